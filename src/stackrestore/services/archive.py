"""Archive extraction helpers for stackrestore."""

import os
import shutil
import zipfile
from pathlib import Path
from typing import Optional

from stackrestore.errors import RestoreError


class ArchiveService:
    """Encapsulates safe archive extraction logic."""

    def is_within_dir(self, base_dir: Path, candidate: Path) -> bool:
        try:
            return os.path.commonpath([str(base_dir), str(candidate)]) == str(base_dir)
        except ValueError:
            return False

    def safe_extract_zip(self, zip_path: str, destination_dir: str):
        base = Path(destination_dir).resolve()

        try:
            with zipfile.ZipFile(zip_path, "r") as zip_ref:
                for member in zip_ref.infolist():
                    normalized_name = member.filename.replace("\\", "/")
                    target_path = (base / normalized_name).resolve()

                    if not self.is_within_dir(base, target_path):
                        raise RestoreError(
                            f"Unsafe ZIP entry detected: `{member.filename}`. "
                            "Archive extraction aborted to prevent path traversal."
                        )

                    file_type = (member.external_attr >> 16) & 0o170000
                    if file_type == 0o120000:
                        raise RestoreError(
                            f"Unsafe ZIP entry detected: `{member.filename}` is a symbolic link."
                        )

                for member in zip_ref.infolist():
                    normalized_name = member.filename.replace("\\", "/")
                    target_path = (base / normalized_name).resolve()

                    if member.is_dir() or normalized_name.endswith("/"):
                        target_path.mkdir(parents=True, exist_ok=True)
                        continue

                    target_path.parent.mkdir(parents=True, exist_ok=True)
                    with zip_ref.open(member, "r") as src, open(target_path, "wb") as dst:
                        shutil.copyfileobj(src, dst)

                    # Release assets ship the binary with its exec bit in the zip attrs.
                    unix_mode = (member.external_attr >> 16) & 0o777
                    if unix_mode:
                        os.chmod(target_path, unix_mode)
        except zipfile.BadZipFile as exc:
            raise RestoreError(f"Invalid ZIP archive: {zip_path}") from exc

    def find_executable(self, root: str, name: str) -> Optional[str]:
        """Returns the first executable file called ``name`` below ``root``."""
        for current_root, _, files in sorted(os.walk(root)):
            if name not in files:
                continue
            candidate = os.path.join(current_root, name)
            if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
                return candidate
        return None
