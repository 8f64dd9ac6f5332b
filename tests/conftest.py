"""
Pytest configuration for the receptionist test suite.

Async tests are marked ``@pytest.mark.anyio`` and run on asyncio only; the
package uses ``asyncio`` primitives directly.
"""

import pytest


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
