from .virsh import Virsh


__all__ = ["Virsh"]
