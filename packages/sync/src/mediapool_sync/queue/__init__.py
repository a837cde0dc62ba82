from .spool import Delivery, SpoolQueue

__all__ = ["Delivery", "SpoolQueue"]
