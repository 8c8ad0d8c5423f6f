"""
Module to validate values in a loaded config

The validation file mirrors the structure of the config file. Any dict in it
that carries a "type" key describes the constraints on the config value at the
same nested key.
"""

# Standard
from typing import Any, Dict, List, Optional, Type
import abc
import builtins

# First Party
import aconfig
import alog

# Local
from .. import constants
from ..utils import nested_get  # pylint: disable=cyclic-import

log = alog.use_channel("CONFG")


################################################################################
## Public ######################################################################
################################################################################


def get_invalid_params(
    config: aconfig.Config,
    validation_config: aconfig.Config,
) -> List[str]:
    """Get a list of any params that are invalid

    Args:
        config:  aconfig.Config
            The parsed config with any override values
        validation_config:  aconfig.Config
            The parallel config holding validation setup

    Returns:
        invalid_params:  List[str]
            A list of all string keys for parameters that fail validation
    """
    invalid_params = []
    for val_key, validator in _parse_validation_config(validation_config).items():
        if not validator.validate(nested_get(config, val_key)):
            log.warning("Found invalid config key [%s]", val_key)
            invalid_params.append(val_key)
    return invalid_params


################################################################################
## Implementation ##############################################################
################################################################################

# Map from the "type" key in the validation file to the parameter class
_PARAMETER_TYPES: Dict[str, Type["_Parameter"]] = {}


def _register(type_key: str):
    """Decorator to make a parameter class available under a type key"""

    def decorator(param_class):
        _PARAMETER_TYPES[type_key] = param_class
        return param_class

    return decorator


# pylint: disable=too-few-public-methods


class _Parameter(abc.ABC):
    """A single config value with type and value constraints"""

    TYPES = ()

    def __init__(self, optional: bool = False):
        self.optional = optional

    def validate(self, value: Any) -> bool:
        """Run the validation for a read value"""
        if self.optional and value is None:
            return True
        # bool is an int, but an int parameter should never accept one
        if isinstance(value, bool) and bool not in self.TYPES:
            log.warning("Invalid type <%s>", type(value))
            return False
        if not isinstance(value, self.TYPES):
            log.warning("Invalid type <%s>", type(value))
            return False
        valid_value = self._validate_value(value)
        if not valid_value:
            log.warning("Invalid value [%s]", value)
        return valid_value

    @abc.abstractmethod
    def _validate_value(self, value: Any) -> bool:
        """Child classes validate the value once the type is known to match"""


@_register("int")
class _IntParameter(_Parameter):
    """An int with optional inclusive bounds"""

    TYPES = (int,)

    def __init__(
        self,
        *,
        min: Optional[int] = None,  # pylint: disable=redefined-builtin
        max: Optional[int] = None,  # pylint: disable=redefined-builtin
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._min = min
        self._max = max

    def _validate_value(self, value: int) -> bool:
        return (self._min is None or value >= self._min) and (
            self._max is None or value <= self._max
        )


@_register("str")
class _StrParameter(_Parameter):
    """A str with optional length bounds"""

    TYPES = (str,)

    def __init__(
        self,
        *,
        min_len: Optional[int] = None,
        max_len: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._min_len = min_len
        self._max_len = max_len

    def _validate_value(self, value: str) -> bool:
        return (self._min_len is None or len(value) >= self._min_len) and (
            self._max_len is None or len(value) <= self._max_len
        )


@_register("bool")
class _BoolParameter(_Parameter):
    """A plain bool"""

    TYPES = (bool,)

    def _validate_value(self, value: bool) -> bool:
        return True


@_register("enum")
class _EnumParameter(_Parameter):
    """A value that must be one of a fixed set"""

    TYPES = (str, int, type(None))

    def __init__(self, *, values: List[Any], **kwargs):
        super().__init__(**kwargs)
        assert (
            isinstance(values, list) and values
        ), "Must specify at least one enum value!"
        self.values = values

    def _validate_value(self, value: Any) -> bool:
        return value in self.values


@_register("list")
class _ListParameter(_Parameter):
    """A list with an optional element type"""

    TYPES = (list,)

    def __init__(self, *, item_type: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self._item_type = None
        if item_type is not None:
            assert hasattr(builtins, item_type), f"Unsupported item_type: {item_type}"
            self._item_type = getattr(builtins, item_type)

    def _validate_value(self, value: list) -> bool:
        return self._item_type is None or all(
            isinstance(item, self._item_type) for item in value
        )


# pylint: enable=too-few-public-methods


def _parse_validation_config(
    validation_config: dict,
    prefix_parts: Optional[List[str]] = None,
) -> Dict[str, _Parameter]:
    """Recursively parse the validation config into a dict from nested keys to
    parameter instances
    """
    output_dict = {}
    prefix_parts = prefix_parts or []
    for key, val in validation_config.items():
        if not isinstance(val, dict):
            continue
        key_parts = prefix_parts + [key]
        nested_key = constants.PATH_DELIM.join(key_parts)
        param_type = val.get("type")
        if isinstance(param_type, str) and param_type in _PARAMETER_TYPES:
            log.debug3("Found parameter at %s: %s", nested_key, val)
            kwargs = {k: v for k, v in val.items() if k != "type"}
            output_dict[nested_key] = _PARAMETER_TYPES[param_type](**kwargs)
        else:
            log.debug3("Recursing into %s", nested_key)
            output_dict.update(_parse_validation_config(val, key_parts))
    return output_dict
