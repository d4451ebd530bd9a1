"""Install receipts stored inside each installed version directory."""

from pathlib import Path

import yaml

from pour.core.logging import get_logger
from pour.models.package import InstallReceipt

log = get_logger(__name__)

RECEIPT_NAME = "INSTALL_RECEIPT.yaml"
RECEIPT_VERSION = 1


def receipt_path(version_dir: Path) -> Path:
    return version_dir / RECEIPT_NAME


def save_receipt(version_dir: Path, receipt: InstallReceipt) -> Path:
    """Write the receipt for an installed version."""
    path = receipt_path(version_dir)
    data = {"receipt_version": RECEIPT_VERSION, **receipt.to_dict()}

    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    return path


def load_receipt(version_dir: Path) -> InstallReceipt | None:
    """Load a receipt, or None if the version has none.

    A missing receipt is not an error; older or hand-made installs lack one.
    A damaged one is logged and treated the same way, see receipt_is_damaged.
    """
    path = receipt_path(version_dir)
    if not path.exists():
        return None

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict) or "name" not in data or "version" not in data:
            raise ValueError("not a receipt mapping")
        return InstallReceipt.from_dict(data)
    except (yaml.YAMLError, ValueError, TypeError) as e:
        log.warning("receipt_unreadable", path=str(path), error=str(e))
        return None


def receipt_is_damaged(version_dir: Path) -> bool:
    """True if a receipt file exists but cannot be loaded."""
    return receipt_path(version_dir).exists() and load_receipt(version_dir) is None
