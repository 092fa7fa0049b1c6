"""
Download adapter — fetch a vendor artifact, verify it, put it in place.

The transfer itself is ``curl``'s business. This adapter checks the
result is non-empty and of the expected format before anything is
extracted, executed or installed, and always cleans its scratch
directory.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import tempfile
from pathlib import Path
from urllib.parse import urlparse

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt
from provisioner.core.models.recipe import expand_path

logger = logging.getLogger(__name__)

_FORMATS = {"tar.gz", "zip", "binary", "script"}

_MAGIC = {
    "tar.gz": (b"\x1f\x8b", "gzip compressed data"),
    "zip": (b"PK\x03\x04", "zip archive"),
    "binary": (b"\x7fELF", "ELF executable"),
}


def verify_checksum(path: Path, expected: str) -> bool:
    """Verify file checksum.  Format: ``algo:hex`` (sha256, sha1, md5)."""
    algo, expected_hash = expected.split(":", 1)
    h = hashlib.new(algo)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest() == expected_hash.lower()


def verify_download(path: Path, fmt: str, checksum: str | None = None) -> str | None:
    """Check a downloaded file before use.

    Returns:
        None when the file is usable, otherwise a description of the problem.
    """
    if not path.is_file():
        return f"Downloaded file missing: {path.name}"
    if path.stat().st_size == 0:
        return f"Downloaded file is empty: {path.name}"

    with open(path, "rb") as f:
        head = f.read(512)

    if fmt in _MAGIC:
        magic, label = _MAGIC[fmt]
        if not head.startswith(magic):
            return f"Downloaded file is not {label}: {path.name}"
    elif fmt == "script":
        lowered = head.lstrip().lower()
        if lowered.startswith(b"<!doctype") or lowered.startswith(b"<html"):
            return f"Downloaded script is an HTML page: {path.name}"

    if checksum and not verify_checksum(path, checksum):
        return f"Checksum mismatch for {path.name}"

    return None


class DownloadAdapter(Adapter):
    """Download + verify + extract/install.

    Action params:
        url (str): Artifact URL.
        format (str): 'tar.gz', 'zip', 'binary' or 'script'.
        extract_to (str): Directory archives are unpacked into.
        install_as (str): Exact path for an archive's single top-level
            directory (e.g. ``/opt/android-studio``); overrides extract_to.
        dest (str): Destination file for 'binary'.
        mode (str): File mode for 'binary' (default 755).
        interpreter (str): Interpreter for 'script' (default bash).
        checksum (str): Optional ``algo:hex``.
    """

    @property
    def name(self) -> str:
        return "download"

    def is_available(self) -> bool:
        return shutil.which("curl") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        params = context.action.params
        if not params.get("url"):
            return False, "Missing required param: 'url'"
        fmt = params.get("format", "")
        if fmt not in _FORMATS:
            return False, f"Unknown format '{fmt}'. Valid: {', '.join(sorted(_FORMATS))}"
        if fmt in ("tar.gz", "zip") and not (params.get("extract_to") or params.get("install_as")):
            return False, "Archive formats need 'extract_to' or 'install_as'"
        if fmt == "binary" and not params.get("dest"):
            return False, "Missing required param: 'dest' for binary format"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.action.params
        url = params["url"]
        fmt = params["format"]
        filename = Path(urlparse(url).path).name or "download"

        workdir = Path(tempfile.mkdtemp(prefix="provisioner-"))
        try:
            artifact = workdir / filename
            fetched = self._run(
                context,
                [
                    "curl", "-fL", "--silent", "--show-error",
                    "--connect-timeout", "30",
                    "--max-time", str(context.timeout),
                    "-o", str(artifact), url,
                ],
                sudo=False,
            )
            if fetched.failed:
                return fetched

            problem = verify_download(artifact, fmt, params.get("checksum"))
            if problem:
                return Receipt.failure(
                    adapter=self.name,
                    action_id=context.action.id,
                    error=problem,
                    metadata={"url": url},
                )
            logger.info("Downloaded %s (%d bytes)", filename, artifact.stat().st_size)

            if fmt == "script":
                return self._run(context, [params.get("interpreter", "bash"), str(artifact)])
            if fmt == "binary":
                dest = expand_path(params["dest"])
                return self._run(
                    context,
                    ["install", "-D", "-m", str(params.get("mode", "755")), str(artifact), dest],
                )
            return self._extract(context, artifact, fmt, workdir / "extract")
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    def _extract(
        self,
        ctx: ExecutionContext,
        artifact: Path,
        fmt: str,
        staging: Path,
    ) -> Receipt:
        params = ctx.action.params
        staging.mkdir()
        if fmt == "tar.gz":
            unpack = ["tar", "-xzf", str(artifact), "-C", str(staging)]
        else:
            unpack = ["unzip", "-q", str(artifact), "-d", str(staging)]
        unpacked = self._run(ctx, unpack, sudo=False)
        if unpacked.failed:
            return unpacked

        if params.get("install_as"):
            entries = list(staging.iterdir())
            if len(entries) != 1 or not entries[0].is_dir():
                return Receipt.failure(
                    adapter=self.name,
                    action_id=ctx.action.id,
                    error=f"Expected one top-level directory in {artifact.name}, "
                    f"found {len(entries)} entries",
                )
            target = Path(expand_path(params["install_as"]))
            if target.exists():
                return Receipt.failure(
                    adapter=self.name,
                    action_id=ctx.action.id,
                    error=f"Install location already exists: {target}",
                )
            prepared = self._run(ctx, ["mkdir", "-p", str(target.parent)])
            if prepared.failed:
                return prepared
            return self._run(ctx, ["cp", "-a", str(entries[0]), str(target)])

        target_dir = Path(expand_path(params["extract_to"]))
        prepared = self._run(ctx, ["mkdir", "-p", str(target_dir)])
        if prepared.failed:
            return prepared
        return self._run(ctx, ["cp", "-a", f"{staging}/.", str(target_dir)])
