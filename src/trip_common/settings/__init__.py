from trip_common.settings.base import BaseServiceSettings

__all__ = ["BaseServiceSettings"]
