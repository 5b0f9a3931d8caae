"""
Configuration module for the realtime console.

```python
from realtime_console.config import load_env_file, get_config
load_env_file()
config = get_config()
print(config.openai.get_websocket_url())

from realtime_console.config.logging_config import configure_logging
logger = configure_logging()
```
"""

from .env_loader import get_environment_info, load_env_file
from .models import (
    ApplicationConfig,
    AudioConfig,
    LoggingConfig,
    LogLevel,
    OpenAIConfig,
    SessionDefaults,
)
from .settings import get_config, reload_config, set_config

__all__ = [
    "ApplicationConfig",
    "AudioConfig",
    "LoggingConfig",
    "LogLevel",
    "OpenAIConfig",
    "SessionDefaults",
    "get_config",
    "get_environment_info",
    "load_env_file",
    "reload_config",
    "set_config",
]
