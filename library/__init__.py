from .identity import IdentityIndex

__all__ = ["IdentityIndex"]
