"""devflash - Firmware flashing for USB-attached IoT devices.

This package orchestrates flashing multi-module firmware (bootloader,
system parts, applications, radio stacks, assets) over DFU and
normal-mode control transfers, with dependency-aware ordering.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
