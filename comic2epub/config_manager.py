import json
import os
from comic2epub.logger import app_logger

CONFIG_FILE_NAME = "config.json"
DEFAULT_CONFIG = {
    "default_author": "Comic2Epub",
    "default_language": "en",
    "default_quality": 85,
    "default_algo": "default",
    "default_dither": "floyd",
    "sort_path_mode": 2, # 0: alpha, 1: natural dirs + alpha file, 2: natural everywhere
    "workers": None, # None uses os.cpu_count()
    "decode_workers_ratio": 50, # share of workers (percent) given to the decode stage
    "size_fit_quality_step": 5,
    "size_fit_min_quality": 10,
    "failure_policy": "fail_fast", # fail_fast or skip
    "log_level": "INFO"
}

def default_config_path():
    env_path = os.environ.get("COMIC2EPUB_CONFIG")
    if env_path:
        return env_path
    return os.path.join(os.path.expanduser("~"), ".comic2epub", CONFIG_FILE_NAME)

class ConfigManager:
    def __init__(self, config_file_path=None):
        self.config_file_path = config_file_path or default_config_path()
        self.config = self._load_config()
        app_logger.debug(f"Config manager ready, file: {self.config_file_path}")

    def _load_config(self):
        """Load the config file over the defaults. A missing file is created with the defaults."""
        if os.path.exists(self.config_file_path):
            try:
                with open(self.config_file_path, 'r', encoding='utf-8') as f:
                    config = json.load(f)
                if not isinstance(config, dict):
                    raise ValueError("top level value must be an object")
                # unknown keys are kept, missing keys fall back to the defaults
                final_config = DEFAULT_CONFIG.copy()
                final_config.update(config)
                return final_config
            except (json.JSONDecodeError, ValueError) as e:
                app_logger.error(f"Config file ({self.config_file_path}) parse error: {e}. Using defaults.")
                return DEFAULT_CONFIG.copy()
            except OSError as e:
                app_logger.error(f"Config file ({self.config_file_path}) unreadable: {e}. Using defaults.")
                return DEFAULT_CONFIG.copy()
        else:
            app_logger.info(f"Config file ({self.config_file_path}) not found, creating it with defaults.")
            self._save_config(DEFAULT_CONFIG)
            return DEFAULT_CONFIG.copy()

    def _save_config(self, config_data):
        """Write config_data to the config file."""
        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.config_file_path)), exist_ok=True)
            with open(self.config_file_path, 'w', encoding='utf-8') as f:
                json.dump(config_data, f, ensure_ascii=False, indent=4)
            app_logger.info(f"Config saved: {self.config_file_path}")
        except OSError as e:
            app_logger.error(f"Config file save failed: {e}")

    def get(self, key, default_value=None):
        """Value for key, else default_value, else the built-in default."""
        value = self.config.get(key)
        if value is not None:
            return value
        return default_value if default_value is not None else DEFAULT_CONFIG.get(key)

# single ConfigManager instance for the application
config_manager = ConfigManager()
