# Copyright 2025 rbmkit Contributors
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
"""
Error types raised by rbmkit.

All errors derive from ValueError so callers that already guard model
construction and training with ``except ValueError`` keep working.
"""


class RBMError(ValueError):
    """Base class for all rbmkit errors."""


class InvalidInputRange(RBMError):
    """Training data contains values outside [0, 1]."""


class ShapeMismatch(RBMError):
    """A batch does not match the layer size it is fed to."""


class InvalidConfiguration(RBMError):
    """A model or training setting is outside its allowed range."""
