import logging
import tempfile
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from pathlib import Path
from typing import Dict, List, Optional

from PIL import Image

from .. import config
from ..config import Settings
from ..exceptions import ThumbnailError
from ..models import ScannedFile, ThumbnailFailure, ThumbnailOutcome, ThumbnailSuccess
from .placeholder import is_placeholder
from .strategies import DEFAULT_CHAINS, RenderAttempt, Strategy


class ThumbnailPipeline:
    """
    Per-type fallback chain producing a JPEG thumbnail.

    Types in ALWAYS_RENDERABLE_TYPES raise ThumbnailError when every strategy
    fails. Types that may legitimately lack a preview return a
    ThumbnailFailure instead, so the caller can route the asset to the
    desktop render queue.
    """

    def __init__(self, settings: Settings, chains: Optional[Dict[str, List[Strategy]]] = None):
        self.settings = settings
        self.chains = chains if chains is not None else DEFAULT_CHAINS

    def extract(self, file: ScannedFile, asset_id: str) -> ThumbnailOutcome:
        output = self.settings.thumbnail_dir / f"{asset_id}.jpg"
        return self.extract_path(file.file_path, file.file_type, output)

    def extract_path(self, source: Path, file_type: str, output: Path) -> ThumbnailOutcome:
        chain = self.chains.get(file_type)
        if not chain:
            return ThumbnailFailure("unsupported_type", f"No thumbnail strategies for type '{file_type}'")

        must_render = file_type in config.ALWAYS_RENDERABLE_TYPES
        output.parent.mkdir(parents=True, exist_ok=True)

        errors: List[str] = []
        saw_placeholder = False

        with tempfile.TemporaryDirectory(prefix="thumb-", ignore_cleanup_errors=True) as work:
            for strategy in chain:
                attempt = self._attempt(strategy, source, Path(work))
                if not attempt.ok:
                    logging.debug(f"{attempt.strategy} failed for {source}: {attempt.error}")
                    errors.append(f"{attempt.strategy}: {attempt.error}")
                    continue

                width, height = attempt.image.size
                self._write_jpeg(attempt.image, output)

                if not must_render and self._is_placeholder(output):
                    output.unlink(missing_ok=True)
                    saw_placeholder = True
                    errors.append(f"{attempt.strategy}: placeholder output")
                    continue

                return ThumbnailSuccess(output, width, height, attempt.strategy)

        message = "; ".join(errors)
        if must_render:
            raise ThumbnailError(f"All thumbnail extraction methods failed for {source}: {message}")

        reason = config.REASON_PLACEHOLDER if saw_placeholder else config.REASON_NO_PDF_COMPAT
        return ThumbnailFailure(reason, message)

    def _attempt(self, strategy: Strategy, source: Path, work_dir: Path) -> RenderAttempt:
        """
        Runs one strategy with a wall-clock limit. A hung in-process decoder
        is abandoned on its worker thread; subprocess tools get the same
        limit directly.
        """
        timeout = self.settings.strategy_timeout_seconds
        name = getattr(strategy, "__name__", "strategy")
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"thumb-{name}")
        try:
            future = executor.submit(strategy, source, work_dir, timeout)
            return future.result(timeout=timeout)
        except FutureTimeout:
            return RenderAttempt(name, error=f"timed out after {timeout:.0f}s")
        finally:
            executor.shutdown(wait=False)

    def _write_jpeg(self, image: Image.Image, output: Path):
        """Flattens onto white, fits inside the max box (never upscaling), saves as JPEG."""
        im = _flatten(image)
        size = self.settings.thumbnail_max_size
        im.thumbnail((size, size), Image.Resampling.LANCZOS)
        im.save(output, "JPEG", quality=self.settings.thumbnail_quality)

    def _is_placeholder(self, output: Path) -> bool:
        return is_placeholder(
            output,
            white_mean=self.settings.placeholder_white_mean,
            max_stddev=self.settings.placeholder_max_stddev,
            small_bytes=self.settings.placeholder_small_bytes,
        )


def _flatten(image: Image.Image) -> Image.Image:
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image.copy()
