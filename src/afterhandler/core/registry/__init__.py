from .reader import RegistryReader
from .schemas import RegistryKey, RegistryRecord

__all__ = ["RegistryKey", "RegistryReader", "RegistryRecord"]
