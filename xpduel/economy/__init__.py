from xpduel.economy.progression import ProgressionService

__all__ = ["ProgressionService"]
