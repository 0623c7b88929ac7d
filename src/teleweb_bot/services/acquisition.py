"""Materialize Telegram media on local disk."""

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from teleweb_bot.adapters.telegram_file_client import TelegramFile, TelegramFileClient
from teleweb_bot.domain.models import AcquiredFile
from teleweb_bot.errors import MediaAcquisitionFailed

logger = logging.getLogger(__name__)

_MEDIA_KINDS = ("photos", "documents")


@dataclass
class FileAcquisitionService:
    """Copy media from the local Bot API relay, or download it.

    When the relay's data directory exists on this host the file is copied
    from disk. Otherwise, or when the copy fails, it is streamed over the
    network. Either way the result must be a non-empty file.
    """

    file_client: TelegramFileClient
    relay_dir: Path | None = None
    download_timeout: float = 30.0
    _relay_available: bool | None = field(default=None, init=False)

    @property
    def relay_available(self) -> bool:
        if self._relay_available is None:
            self._relay_available = self.relay_dir is not None and (
                self.relay_dir.is_dir()
            )
            logger.info(
                "Local relay storage %s",
                "detected" if self._relay_available else "not found",
                extra={"relay_dir": str(self.relay_dir)},
            )
        return self._relay_available

    async def acquire(self, media_ref: str, target_path: Path) -> AcquiredFile:
        """Write the file for ``media_ref`` to ``target_path``."""
        target_path.parent.mkdir(parents=True, exist_ok=True)
        reasons: list[str] = []
        try:
            metadata = await self.file_client.get_file_metadata(media_ref)
        except Exception as exc:
            raise MediaAcquisitionFailed(media_ref, [f"lookup: {exc}"]) from exc

        if self.relay_available:
            try:
                return await self._copy_from_relay(metadata, target_path)
            except Exception as exc:
                reasons.append(f"local: {exc}")
                logger.warning(
                    "Local copy failed, falling back to download",
                    extra={"media_ref": media_ref, "reason": str(exc)},
                )
                _discard(target_path)

        try:
            return await self._download(metadata, target_path)
        except Exception as exc:
            reasons.append(f"network: {exc}")
            _discard(target_path)
            raise MediaAcquisitionFailed(media_ref, reasons) from exc

    def find_relay_file(self, file_path: str) -> Path | None:
        """Locate ``file_path`` (as reported by getFile) inside the relay dir."""
        if self.relay_dir is None:
            return None
        candidate = Path(file_path)
        if candidate.is_absolute():
            if candidate.is_relative_to(self.relay_dir) and candidate.is_file():
                return candidate
        relative = _relative_media_path(file_path)
        kind = relative.parts[0] if len(relative.parts) > 1 else "photos"
        try:
            token_dirs = sorted(p for p in self.relay_dir.iterdir() if p.is_dir())
        except OSError:
            return None
        for token_dir in token_dirs:
            for option in (
                token_dir / relative,
                token_dir / kind / relative.name,
            ):
                if option.is_file():
                    return option
        return None

    async def _copy_from_relay(
        self, metadata: TelegramFile, target_path: Path
    ) -> AcquiredFile:
        source = await asyncio.to_thread(self.find_relay_file, metadata.file_path)
        if source is None:
            raise FileNotFoundError(f"{metadata.file_path} not in relay storage")
        await asyncio.to_thread(shutil.copyfile, source, target_path)
        return AcquiredFile(
            path=target_path,
            bytes_written=_verify(target_path),
            strategy="local",
        )

    async def _download(
        self, metadata: TelegramFile, target_path: Path
    ) -> AcquiredFile:
        url = self.file_client.resolve_download_url(metadata.file_path)
        async with asyncio.timeout(self.download_timeout):
            await self.file_client.stream_to_path(
                url, target_path, timeout=self.download_timeout
            )
        return AcquiredFile(
            path=target_path,
            bytes_written=_verify(target_path),
            strategy="network",
        )


def _relative_media_path(file_path: str) -> PurePosixPath:
    """Return the path from the media kind segment on, or just the name."""
    path = PurePosixPath(file_path)
    for index, part in enumerate(path.parts):
        if part in _MEDIA_KINDS:
            return PurePosixPath(*path.parts[index:])
    return PurePosixPath(path.name)


def _verify(path: Path) -> int:
    if not path.is_file():
        raise FileNotFoundError(f"{path} was not written")
    size = path.stat().st_size
    if size == 0:
        raise ValueError(f"{path} is empty")
    return size


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not remove partial file", extra={"path": str(path)})
