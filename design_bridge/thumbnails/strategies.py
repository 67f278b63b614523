"""
Rendering strategies. Each one turns a source file into a PIL image or
reports why it could not; none of them raise.

    psd:  psd-tools composite -> ImageMagick -> GraphicsMagick
    ai:   PyMuPDF (PDF-compatible AI) -> Ghostscript -> Inkscape
"""
import subprocess
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Callable, List, Optional

import fitz  # PyMuPDF
from PIL import Image
from psd_tools import PSDImage

from .. import config


@dataclass
class RenderAttempt:
    strategy: str
    image: Optional[Image.Image] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.image is not None


Strategy = Callable[[Path, Path, float], RenderAttempt]


def _load_png(path: Path) -> Image.Image:
    with Image.open(path) as im:
        im.load()
        return im.copy()


def _run_tool(name: str, cmd: List[str], output: Path, timeout: float) -> RenderAttempt:
    """Runs an external rasterizer that writes a PNG to `output`."""
    try:
        subprocess.run(cmd, check=True, timeout=timeout,
                       stdout=subprocess.DEVNULL, stderr=subprocess.PIPE)
    except FileNotFoundError:
        return RenderAttempt(name, error=f"{cmd[0]} not installed")
    except subprocess.TimeoutExpired:
        return RenderAttempt(name, error=f"timed out after {timeout:.0f}s")
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or b"").decode("utf-8", "replace").strip().splitlines()
        return RenderAttempt(name, error=f"exit {e.returncode}: {stderr[-1] if stderr else ''}")

    if not output.exists():
        return RenderAttempt(name, error="no output produced")
    try:
        return RenderAttempt(name, image=_load_png(output))
    except (OSError, Image.DecompressionBombError) as e:
        return RenderAttempt(name, error=f"unreadable output: {e}")
    finally:
        output.unlink(missing_ok=True)


# --- PSD ---

def psd_composite(source: Path, work_dir: Path, timeout: float) -> RenderAttempt:
    """Reads the flattened composite stored in the PSD (or composites the layers)."""
    try:
        psd = PSDImage.open(source)
        image = psd.topil() or psd.composite()
    except Exception as e:
        # psd-tools raises a wide range of parser errors on damaged files
        return RenderAttempt("psd-tools", error=str(e) or type(e).__name__)
    if image is None:
        return RenderAttempt("psd-tools", error="no composite image")
    return RenderAttempt("psd-tools", image=image)


def imagemagick(source: Path, work_dir: Path, timeout: float) -> RenderAttempt:
    output = work_dir / f"{source.stem}.magick.png"
    return _run_tool("imagemagick", ["magick", f"{source}[0]", str(output)], output, timeout)


def graphicsmagick(source: Path, work_dir: Path, timeout: float) -> RenderAttempt:
    output = work_dir / f"{source.stem}.gm.png"
    return _run_tool("graphicsmagick", ["gm", "convert", f"{source}[0]", str(output)], output, timeout)


# --- AI ---

def pymupdf_render(source: Path, work_dir: Path, timeout: float) -> RenderAttempt:
    """Works when the AI file was saved with PDF compatibility (the default)."""
    try:
        with fitz.open(str(source), filetype="pdf") as doc:
            if doc.page_count == 0:
                return RenderAttempt("pymupdf", error="no pages")
            page = doc.load_page(0)
            matrix = fitz.Matrix(config.RENDER_DPI / 72.0, config.RENDER_DPI / 72.0)
            pixmap = page.get_pixmap(matrix=matrix)
            image = Image.open(BytesIO(pixmap.tobytes("png")))
            image.load()
    except Exception as e:
        # PyMuPDF surfaces format problems as generic RuntimeError/ValueError
        return RenderAttempt("pymupdf", error=str(e) or type(e).__name__)
    return RenderAttempt("pymupdf", image=image)


def ghostscript(source: Path, work_dir: Path, timeout: float) -> RenderAttempt:
    output = work_dir / f"{source.stem}.gs.png"
    cmd = [
        "gs",
        "-dNOPAUSE",
        "-dBATCH",
        "-dSAFER",
        "-sDEVICE=png16m",
        f"-r{config.RENDER_DPI}",
        "-dFirstPage=1",
        "-dLastPage=1",
        f"-sOutputFile={output}",
        str(source),
    ]
    return _run_tool("ghostscript", cmd, output, timeout)


def inkscape(source: Path, work_dir: Path, timeout: float) -> RenderAttempt:
    output = work_dir / f"{source.stem}.inkscape.png"
    cmd = [
        "inkscape",
        str(source),
        "--export-type=png",
        f"--export-filename={output}",
        f"--export-dpi={config.RENDER_DPI}",
    ]
    return _run_tool("inkscape", cmd, output, timeout)


PSD_STRATEGIES: List[Strategy] = [psd_composite, imagemagick, graphicsmagick]
AI_STRATEGIES: List[Strategy] = [pymupdf_render, ghostscript, inkscape]

DEFAULT_CHAINS = {
    'psd': PSD_STRATEGIES,
    'ai': AI_STRATEGIES,
}
