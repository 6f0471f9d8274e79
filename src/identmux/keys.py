"""SSH key generation through ssh-keygen."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

from .exceptions import ExternalToolError
from .models import KeyResult

KEY_DIR_MODE = 0o700
PRIVATE_KEY_MODE = 0o600
PUBLIC_KEY_MODE = 0o644


class KeyGenerator:
    """Creates ed25519 key pairs for identities that lack one."""

    def __init__(self, executable: str = "ssh-keygen", key_type: str = "ed25519") -> None:
        self.executable = executable
        self.key_type = key_type

    def available(self) -> bool:
        return shutil.which(self.executable) is not None

    def generate(self, path: Path, comment: str) -> KeyResult:
        """Generate a passphrase-less key pair at ``path``.

        Args:
            path: Private key path (already home-expanded)
            comment: Key comment, usually the identity's email

        Returns:
            Result with ``created`` False when the key already existed

        Raises:
            ExternalToolError: If ssh-keygen is missing or fails
        """
        path = Path(path)
        if path.exists():
            return KeyResult(path=path, created=False)

        if not self.available():
            msg = f"{self.executable} not found. Please install OpenSSH."
            raise ExternalToolError(msg, details={"key": str(path)})

        path.parent.mkdir(parents=True, exist_ok=True)
        path.parent.chmod(KEY_DIR_MODE)

        command = [
            self.executable,
            "-t", self.key_type,
            "-C", comment,
            "-f", str(path),
            "-N", "",
            "-q",
        ]
        try:
            subprocess.run(command, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            msg = f"ssh-keygen failed for {path}: {e.stderr.strip() or e.returncode}"
            raise ExternalToolError(msg, details={"key": str(path)}) from e

        public_path = path.with_name(f"{path.name}.pub")
        path.chmod(PRIVATE_KEY_MODE)
        public_key = ""
        if public_path.exists():
            public_path.chmod(PUBLIC_KEY_MODE)
            public_key = public_path.read_text(encoding="utf-8").strip()

        return KeyResult(path=path, created=True, public_key=public_key)
