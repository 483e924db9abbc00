import os
from typing import Dict, Optional, Any, List
from pydantic import BaseModel, Field
import yaml

# Configuration paths
CONFIG_PATH = os.getenv('CONFIG_PATH', 'config.yaml')

DEFAULT_MODELS = [
    {'name': 'mlp', 'full_name': 'Multi-Layer Perceptron', 'proba_field': 'mlp_proba'},
    {'name': 'rf', 'full_name': 'Random Forest', 'proba_field': 'rf_proba'},
    {'name': 'xgboost', 'full_name': 'XGBoost', 'proba_field': 'xgboost_proba'},
    {'name': 'benter', 'full_name': 'Light GBM', 'proba_field': 'benter_proba'},
    {'name': 'ensemble', 'full_name': 'Ensemble Model', 'proba_field': 'ensemble_proba'},
]


class DatabaseEntry(BaseModel):
    """Individual database configuration entry"""
    name: str
    type: str
    description: Optional[str] = None
    path: Optional[str] = None


class Baseconfig(BaseModel):
    timezone: str = 'Europe/London'
    backend: str = 'sqlite'
    active_db: str = 'racing'


class SupabaseConfig(BaseModel):
    """Names of the environment variables holding the Supabase credentials"""
    url_env: str = 'SUPABASE_URL'
    key_env: str = 'SUPABASE_SERVICE_ROLE_KEY'


class ModelSpec(BaseModel):
    """One prediction model and the entry column holding its probability"""
    name: str
    full_name: str
    proba_field: str


class ThresholdsConfig(BaseModel):
    hot_win_rate: float = 40.0
    cold_win_rate: float = 10.0
    due_winner_min_losses: int = 5
    due_winner_max_win_rate: float = 20.0
    results_buffer_minutes: int = 10


class TablesConfig(BaseModel):
    races: str = 'races'
    entries: str = 'race_entries'
    runners: str = 'race_runners'
    archive: str = 'ml_model_race_results'


class TrackerConfig(BaseModel):
    """Model tracker configuration"""
    batch_size: int = Field(50, gt=0)
    result_sources: List[str] = ['race_runners', 'entry_positions', 'archived_results']
    tables: TablesConfig = TablesConfig()
    models: List[ModelSpec] = [ModelSpec(**m) for m in DEFAULT_MODELS]
    ensemble_model: str = 'ensemble'
    history_days: int = Field(30, ge=0)
    thresholds: ThresholdsConfig = ThresholdsConfig()


class Config(BaseModel):
    """Complete application configuration"""
    base: Baseconfig = Baseconfig()
    databases: List[DatabaseEntry] = []
    supabase: SupabaseConfig = SupabaseConfig()
    tracker: TrackerConfig = TrackerConfig()

    # Allow additional fields for custom config values
    model_config = {'extra': 'allow'}


class AppConfig:
    """
    Application configuration class that loads settings from config.yaml
    using Pydantic for validation.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize AppConfig with optional custom config path
        """
        self.config_path = config_path or CONFIG_PATH
        self._config = self._load_config()
        self._validate_tracker()

    def _load_config(self) -> Config:
        """
        Load the configuration from yaml file and validate with Pydantic.
        Raises exception if config is missing or invalid.
        """
        try:
            with open(self.config_path, 'r') as file:
                config_data = yaml.safe_load(file) or {}
                return Config(**config_data)
        except FileNotFoundError:
            raise FileNotFoundError(f"Config file not found: {self.config_path}. Please create a valid config.yaml.")
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML configuration in {self.config_path}: {e}")
        except Exception as e:
            raise ValueError(f"Error parsing configuration from {self.config_path}: {str(e)}")

    def _validate_tracker(self):
        """
        Validate model and result source settings.

        Raises:
            ValueError: If the tracker section is inconsistent
        """
        tracker = self._config.tracker
        names = [model.name for model in tracker.models]

        if not names:
            raise ValueError("Configuration must define at least one model under 'tracker.models'")

        duplicates = {name for name in names if names.count(name) > 1}
        if duplicates:
            raise ValueError(f"Duplicate model names in configuration: {sorted(duplicates)}")

        if tracker.ensemble_model not in names:
            raise ValueError(f"Ensemble model '{tracker.ensemble_model}' is not one of the configured models: {names}")

        if not tracker.result_sources:
            raise ValueError("Configuration must list at least one entry under 'tracker.result_sources'")

        if self._config.base.backend not in ('sqlite', 'supabase'):
            raise ValueError(f"Unknown backend '{self._config.base.backend}' (expected 'sqlite' or 'supabase')")

    @property
    def tracker(self) -> TrackerConfig:
        return self._config.tracker

    @property
    def timezone(self) -> str:
        return self._config.base.timezone

    @property
    def backend(self) -> str:
        return self._config.base.backend

    def get_sqlite_dbpath(self, db_name) -> str:
        """
        Get the SQLite database path for the specified database name.

        Args:
            db_name: Name of the database to get path for

        Returns:
            Path to the SQLite database

        Raises:
            ValueError: If the database is not found or is not SQLite
        """
        for db in self._config.databases:
            if db.name == db_name:
                if db.type != "sqlite":
                    raise ValueError(f"Database '{db_name}' is not a SQLite database")
                if not db.path:
                    raise ValueError(f"Database '{db_name}' does not have a path specified")
                return db.path

        raise ValueError(f"Database '{db_name}' not found in configuration")

    def get_active_db_path(self) -> str:
        """
        Retrieve the path of the base.active_db database from the configuration.
        """
        active_db = self._config.base.active_db
        if not active_db:
            raise KeyError("'base.active_db' not found in configuration.")
        return self.get_sqlite_dbpath(active_db)

    def get_supabase_credentials(self) -> Dict[str, str]:
        """
        Read the Supabase URL and key from the environment variables named in config.

        Raises:
            ValueError: If either variable is unset
        """
        names = self._config.supabase
        url = os.environ.get(names.url_env)
        key = os.environ.get(names.key_env)
        if not url or not key:
            raise ValueError(f"Supabase credentials missing: set {names.url_env} and {names.key_env}")
        return {'url': url, 'key': key}

    def get_models(self) -> List[ModelSpec]:
        return list(self._config.tracker.models)

    def get_model(self, name: str) -> ModelSpec:
        for model in self._config.tracker.models:
            if model.name == name:
                return model
        available = [model.name for model in self._config.tracker.models]
        raise ValueError(f"Model '{name}' not found. Available models: {available}")

    def get_ensemble_model(self) -> ModelSpec:
        return self.get_model(self._config.tracker.ensemble_model)

    def get_thresholds(self) -> Dict[str, Any]:
        """
        Get performance classification thresholds

        Returns:
            Dictionary with threshold values
        """
        return self._config.tracker.thresholds.model_dump()

    def list_databases(self) -> List[Dict[str, Any]]:
        """
        Get a list of all configured databases

        Returns:
            List of database configurations as dictionaries
        """
        return [db.model_dump() for db in self._config.databases]


# Convenience functions for backward compatibility
def get_sqlite_dbpath(db_name: str = "racing") -> str:
    """Get SQLite database path from config"""
    return AppConfig().get_sqlite_dbpath(db_name)
