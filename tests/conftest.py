from __future__ import annotations

import io

import pytest


class KeepingSink(io.BytesIO):
    """BytesIO that remembers its contents once closed."""

    data = b""

    def close(self):
        if not self.closed:
            self.data = self.getvalue()
        super().close()


@pytest.fixture
def sink():
    return KeepingSink()
