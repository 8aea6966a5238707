# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import re
from typing import Any, Iterable, Literal

Direction = Literal["camel_to_snake", "snake_to_camel"]

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def camel_to_snake(name: str) -> str:
    """`photoUrl` -> `photo_url`. All-caps keys such as currency codes are kept."""
    return _CAMEL_BOUNDARY.sub(lambda m: "_" + m.group(1).lower(), name)


def snake_to_camel(name: str) -> str:
    """`photo_url` -> `photoUrl`."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def convert_keys(data: Any, direction: Direction, preserve: Iterable[str] = ()) -> Any:
    """
    Recursively converts dictionary keys between camelCase and snake_case.

    Args:
        data: A dict, list, or scalar value.
        direction: Either "camel_to_snake" or "snake_to_camel".
        preserve: Keys (in either spelling) whose values are copied without
            converting nested keys. Use this for maps keyed by ids or
            currency codes.

    Returns:
        A new structure with converted keys.
    """
    if direction == "camel_to_snake":
        convert = camel_to_snake
    elif direction == "snake_to_camel":
        convert = snake_to_camel
    else:
        raise ValueError(f"Unknown key conversion direction: {direction}")

    preserved = set(preserve)
    preserved |= {camel_to_snake(key) for key in preserved}
    preserved |= {snake_to_camel(key) for key in preserved}
    return _convert(data, convert, preserved)


def _convert(data: Any, convert, preserved: set) -> Any:
    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if key in preserved:
                result[convert(key)] = value
            else:
                result[convert(key)] = _convert(value, convert, preserved)
        return result
    if isinstance(data, list):
        return [_convert(item, convert, preserved) for item in data]
    return data
