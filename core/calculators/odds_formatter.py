"""
Decimal to UK fractional odds conversion for runner displays.
"""

import math
import re
from typing import Optional, Union

# (decimal - 1) profit -> traditional fractional display
COMMON_FRACTIONS = [
    (0.1, '1/10'), (0.11, '1/9'), (0.13, '1/8'), (0.14, '1/7'),
    (0.17, '1/6'), (0.2, '1/5'), (0.22, '2/9'), (0.25, '1/4'),
    (0.29, '2/7'), (0.3, '3/10'), (0.33, '1/3'), (0.36, '4/11'),
    (0.4, '2/5'), (0.44, '4/9'), (0.45, '9/20'), (0.5, '1/2'),
    (0.53, '8/15'), (0.57, '4/7'), (0.6, '3/5'), (0.62, '8/13'),
    (0.67, '2/3'), (0.73, '8/11'), (0.75, '3/4'), (0.8, '4/5'),
    (0.83, '5/6'), (0.91, '10/11'), (1.0, 'EVS'), (1.1, '11/10'),
    (1.2, '6/5'), (1.25, '5/4'), (1.3, '13/10'), (1.33, '4/3'),
    (1.4, '7/5'), (1.5, '6/4'), (1.67, '5/3'), (1.8, '9/5'),
    (2.0, '2/1'), (2.25, '9/4'), (2.5, '5/2'), (2.75, '11/4'),
    (3.0, '3/1'), (3.5, '7/2'), (4.0, '4/1'), (4.5, '9/2'),
    (5.0, '5/1'), (5.5, '11/2'), (6.0, '6/1'), (7.0, '7/1'),
    (8.0, '8/1'), (9.0, '9/1'), (10.0, '10/1'), (11.0, '11/1'),
    (12.0, '12/1'), (14.0, '14/1'), (16.0, '16/1'), (18.0, '18/1'),
    (20.0, '20/1'), (22.0, '22/1'), (25.0, '25/1'), (28.0, '28/1'),
    (33.0, '33/1'), (40.0, '40/1'), (50.0, '50/1'), (66.0, '66/1'),
    (80.0, '80/1'), (100.0, '100/1'),
]

_FRACTIONAL = re.compile(r'^\d+/\d+$')


def decimal_to_fractional(value: Optional[Union[str, float, int]]) -> str:
    """
    Convert decimal odds (e.g. 5.0) to UK fractional display (e.g. "4/1").

    Missing or invalid values give "TBC", anything at or below evens gives "EVS",
    and strings that are already fractional pass through unchanged.
    """
    if value is None:
        return 'TBC'

    text = str(value).strip()
    if not text:
        return 'TBC'

    if _FRACTIONAL.match(text) or text.upper() == 'EVS':
        return text

    try:
        decimal_odds = float(text)
    except ValueError:
        return 'TBC'
    if not math.isfinite(decimal_odds) or decimal_odds <= 0:
        return 'TBC'
    if decimal_odds <= 1:
        return 'EVS'

    profit = decimal_odds - 1
    best_profit, best_label = min(COMMON_FRACTIONS, key=lambda pair: abs(profit - pair[0]))
    best_diff = abs(profit - best_profit)

    # 12% relative tolerance, or close in absolute terms for short prices
    if best_diff / max(profit, 0.01) < 0.12 or best_diff < 0.08:
        return best_label

    rounded = round(profit)
    return 'EVS' if rounded <= 0 else f"{rounded}/1"
