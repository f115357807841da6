from xpduel.economy.progression.service import ProgressionService

__all__ = ["ProgressionService"]
