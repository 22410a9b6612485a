import json
import os
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError

from fulfillment.settings.models import AppModel, Observable
from fulfillment.utils import data_dir_path

ENV_PREFIX = "FULFILLMENT"


def _coerce(raw: str, current: Any) -> Any:
    """Convert an environment string to the type of the value it replaces."""

    if isinstance(current, bool):
        return raw.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, (list, dict)):
        return json.loads(raw)
    return raw


class SettingsManager:
    """
    Owns the validated `AppModel` for the process.

    Settings come from `settings.json` in the data directory. Without that file
    the defaults are used, overlaid with `FULFILLMENT_*` environment variables
    (`FULFILLMENT_CALENDAR_DAYS_AHEAD=14` sets `calendar.days_ahead`). With
    `FULFILLMENT_FORCE_ENV=true` the environment also wins over the file.
    Any change to a settings model notifies the registered observers.
    """

    def __init__(self, filename: str = "settings.json"):
        self.observers: list[Callable[[], None]] = []
        self.settings_file = data_dir_path / filename

        Observable.set_notify_observers(self.notify_observers)

        if self.settings_file.exists():
            self.load()
        else:
            self.settings = AppModel.model_validate(
                self.check_environment(AppModel().model_dump(mode="json"), ENV_PREFIX)
            )
            self.notify_observers()

    def register_observer(self, observer: Callable[[], None]):
        self.observers.append(observer)

    def notify_observers(self):
        for observer in self.observers:
            observer()

    def check_environment(self, settings: dict, prefix: str = "", separator: str = "_") -> dict:
        """Return a copy of `settings` with every leaf overridden by its non-empty env variable."""

        checked = {}
        for key, value in settings.items():
            name = f"{prefix}{separator}{key}"
            if isinstance(value, dict):
                checked[key] = self.check_environment(value, name, separator)
                continue

            raw = os.getenv(name.upper())
            checked[key] = _coerce(raw, value) if raw else value
        return checked

    def load(self, settings_dict: dict | None = None):
        """Validate `settings_dict`, or the settings file when none is given, into `self.settings`."""

        try:
            if settings_dict is None:
                settings_dict = json.loads(self.settings_file.read_text(encoding="utf-8"))
                if os.getenv(f"{ENV_PREFIX}_FORCE_ENV", "false").lower() == "true":
                    settings_dict = self.check_environment(settings_dict, ENV_PREFIX)
            self.settings = AppModel.model_validate(settings_dict)
        except ValidationError as e:
            logger.error(f"Invalid settings in {self.settings_file}:\n{format_validation_error(e)}")
            raise
        except json.JSONDecodeError as e:
            logger.error(f"{self.settings_file} is not valid JSON: {e}")
            raise

        self.notify_observers()

    def save(self):
        self.settings_file.parent.mkdir(parents=True, exist_ok=True)
        self.settings_file.write_text(self.settings.model_dump_json(indent=4), encoding="utf-8")


def format_validation_error(e: ValidationError) -> str:
    """One `- dotted.field: message` line per validation error."""

    return "\n".join(
        f"- {'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in e.errors()
    )


settings_manager = SettingsManager()
