import io
import os
import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

# Ensure project root is on sys.path so 'cakegenie' is importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("SUPABASE_DISABLED", "1")
os.environ.setdefault("SUPABASE_STORAGE_LOCAL_DIR", ".local_storage")


def make_image_bytes(
    w=400,
    h=300,
    fmt="JPEG",
    mode="RGB",
    color=(200, 120, 80),
    pattern="solid",
    pad_to=None,
    **save_kw,
) -> bytes:
    """Encode a synthetic photo. ``pattern`` is "solid", "gradient" or "noise"."""
    channels = 4 if mode == "RGBA" else 3
    if pattern == "noise":
        rng = np.random.default_rng(1234)
        arr = rng.integers(0, 256, size=(h, w, channels), dtype=np.uint8)
    elif pattern == "gradient":
        xs = np.linspace(0, 255, w, dtype=np.float32)
        ys = np.linspace(0, 255, h, dtype=np.float32)
        arr = np.zeros((h, w, channels), dtype=np.uint8)
        arr[..., 0] = xs[None, :].astype(np.uint8)
        arr[..., 1] = ys[:, None].astype(np.uint8)
        arr[..., 2] = 128
        if channels == 4:
            arr[..., 3] = 255
    else:
        arr = np.zeros((h, w, channels), dtype=np.uint8)
        arr[:, :] = color
    img = Image.fromarray(arr)
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_kw)
    data = buf.getvalue()
    if pad_to is not None and len(data) < pad_to:
        # trailing bytes after the end marker are ignored by decoders
        data += b"\0" * (pad_to - len(data))
    return data


@pytest.fixture()
def make_image():
    return make_image_bytes


@pytest.fixture(autouse=True)
def isolated_backends(tmp_path, monkeypatch):
    from cakegenie.infrastructure.database.repositories.pricing_repository import clear_memory_rows

    monkeypatch.setenv("SUPABASE_DISABLED", "1")
    monkeypatch.setenv("SUPABASE_STORAGE_LOCAL_DIR", str(tmp_path / "storage"))
    clear_memory_rows()
    yield tmp_path / "storage"
    clear_memory_rows()


@pytest.fixture()
def supabase_enabled(monkeypatch):
    """Turn Supabase mode on with no credentials configured."""
    monkeypatch.setenv("SUPABASE_DISABLED", "0")
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)


@pytest.fixture()
def sleeps():
    return []


@pytest.fixture()
def fake_sleep(sleeps):
    async def sleep(delay):
        sleeps.append(delay)

    return sleep
