from fulfillment.settings.manager import settings_manager, SettingsManager

__all__ = ["settings_manager", "SettingsManager"]
