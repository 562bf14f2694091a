"""Firmware module handling.

This module handles:
- Parsing module binaries (prefix, suffix, CRC)
- Classifying modules by function and platform storage
- Ordering modules by their declared dependencies
- Pre-flight CRC and platform checks
"""

from devflash.modules.classifier import (
    classify,
    describe_module_type,
    find_firmware_module,
    lookup_firmware_module,
    module_type_for_function,
)
from devflash.modules.dependency import DependencyCycleError, order_by_dependency
from devflash.modules.models import (
    INVALID_SUFFIX_SIZE,
    CrcInfo,
    ModuleDependency,
    ModuleDescriptor,
    ModuleInfo,
    PrefixInfo,
    SuffixInfo,
)
from devflash.modules.parser import HalModuleParser, ModuleParseError, ModuleParser
from devflash.modules.validation import (
    IntegrityError,
    ModuleValidationError,
    PlatformMismatchError,
    validate_module,
)

__all__ = [
    # Models
    "INVALID_SUFFIX_SIZE",
    "CrcInfo",
    "ModuleDependency",
    "ModuleDescriptor",
    "ModuleInfo",
    "PrefixInfo",
    "SuffixInfo",
    # Parser
    "HalModuleParser",
    "ModuleParseError",
    "ModuleParser",
    # Classifier
    "classify",
    "describe_module_type",
    "find_firmware_module",
    "lookup_firmware_module",
    "module_type_for_function",
    # Dependencies
    "DependencyCycleError",
    "order_by_dependency",
    # Validation
    "IntegrityError",
    "ModuleValidationError",
    "PlatformMismatchError",
    "validate_module",
]
