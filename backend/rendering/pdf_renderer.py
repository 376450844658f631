"""
PDF rendering - runs a LaTeX engine over an assembled document.

The engine runs as an async subprocess in a scratch directory. When a run fails
on a missing package or undefined command, the package is added to the
preamble and the run is retried.
"""
import asyncio
import logging
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles

from backend.shared.errors import UpstreamError

logger = logging.getLogger(__name__)

ENGINE_CANDIDATES = ["tectonic", "latexmk", "pdflatex"]

# Commands and environments whose absence points at a specific package
PACKAGE_HINTS = {
    "includegraphics": "graphicx",
    "textcolor": "xcolor",
    "colorbox": "xcolor",
    "href": "hyperref",
    "url": "url",
    "citep": "natbib",
    "citet": "natbib",
    "toprule": "booktabs",
    "midrule": "booktabs",
    "bottomrule": "booktabs",
    "mathbb": "amssymb",
    "mathcal": "amsfonts",
    "boldsymbol": "amsmath",
    "dfrac": "amsmath",
    "lstlisting": "listings",
    "longtable": "longtable",
    "align": "amsmath",
    "multicols": "multicol",
    "tikzpicture": "pgfplots",
    "addplot": "pgfplots",
    "axis": "pgfplots",
    "pie": "pgf-pie",
}

_MISSING_FILE_RE = re.compile(r"! LaTeX Error: File `([\w-]+)\.sty' not found")
_UNDEFINED_COMMAND_RE = re.compile(r"! Undefined control sequence\.\s*l\.\d+.*?\\(\w+)", re.DOTALL)
_UNDEFINED_ENV_RE = re.compile(r"! LaTeX Error: Environment (\w+) undefined")
_DOCUMENTCLASS_RE = re.compile(r"\\documentclass(?:\[.*?\])?\{.*?\}")


@dataclass
class RenderResult:
    pdf: bytes
    engine: str
    attempts: int
    log: str = ""


def find_latex_engine(preferred: Optional[str] = None) -> Optional[str]:
    candidates = ([preferred] if preferred else []) + ENGINE_CANDIDATES
    for candidate in candidates:
        if candidate and shutil.which(candidate):
            return candidate
    return None


def _engine_command(engine: str, tex_path: Path, output_dir: Path) -> List[str]:
    if engine == "tectonic":
        return ["tectonic", "-X", "compile", str(tex_path), "--outdir", str(output_dir)]
    if engine == "latexmk":
        return [
            "latexmk", "-pdf", "-interaction=nonstopmode", "-halt-on-error",
            "-outdir=" + str(output_dir), str(tex_path),
        ]
    return [
        engine, "-interaction=nonstopmode", "-halt-on-error",
        "-output-directory", str(output_dir), str(tex_path),
    ]


def add_missing_packages(source: str, log: str) -> str:
    """
    Add \\usepackage lines for packages a failed run complained about.

    Returns the source unchanged when nothing could be inferred.
    """
    wanted = []
    wanted += _MISSING_FILE_RE.findall(log)
    wanted += [PACKAGE_HINTS[c] for c in _UNDEFINED_COMMAND_RE.findall(log) if c in PACKAGE_HINTS]
    wanted += [PACKAGE_HINTS[e] for e in _UNDEFINED_ENV_RE.findall(log) if e in PACKAGE_HINTS]

    match = _DOCUMENTCLASS_RE.search(source)
    if not match:
        return source

    additions = []
    for package in dict.fromkeys(wanted):
        if re.search(r"\\usepackage(?:\[.*?\])?\{" + re.escape(package) + r"\}", source):
            continue
        additions.append(f"\\usepackage{{{package}}}")
    if not additions:
        return source

    logger.info(f"Adding missing LaTeX packages: {', '.join(additions)}")
    insert_at = match.end()
    return source[:insert_at] + "\n" + "\n".join(additions) + source[insert_at:]


class PdfRenderer:
    """Compiles LaTeX source to PDF bytes with a local TeX engine."""

    def __init__(self, engine: str = "pdflatex", timeout: float = 120.0, max_attempts: int = 3):
        self.engine = engine
        self.timeout = timeout
        self.max_attempts = max_attempts

    async def _run(self, command: List[str], cwd: Path) -> Tuple[int, str]:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        try:
            output, _ = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise UpstreamError(f"LaTeX compilation timed out after {self.timeout}s")
        return process.returncode, output.decode("utf-8", errors="replace")

    async def _compile_once(self, engine: str, source: str, workdir: Path, name: str) -> Tuple[Optional[bytes], str]:
        tex_path = workdir / f"{name}.tex"
        async with aiofiles.open(tex_path, "w", encoding="utf-8") as f:
            await f.write(source)

        command = _engine_command(engine, tex_path, workdir)
        # pdflatex needs a second pass to resolve the table of contents
        passes = 2 if engine not in ("tectonic", "latexmk") else 1

        log = ""
        for _ in range(passes):
            code, output = await self._run(command, workdir)
            log += output
            if code != 0:
                return None, log

        pdf_path = workdir / f"{name}.pdf"
        if not pdf_path.exists():
            return None, log
        async with aiofiles.open(pdf_path, "rb") as f:
            return await f.read(), log

    async def render(self, source: str, name: str = "document") -> RenderResult:
        """
        Compile LaTeX source into a PDF.

        Raises:
            UpstreamError: no engine is installed or every attempt failed
        """
        engine = find_latex_engine(self.engine)
        if engine is None:
            raise UpstreamError(
                "No LaTeX engine available for PDF rendering",
                details={"tried": [self.engine] + ENGINE_CANDIDATES}
            )

        log = ""
        with tempfile.TemporaryDirectory(prefix="latex_") as tmp:
            workdir = Path(tmp)
            for attempt in range(1, self.max_attempts + 1):
                logger.info(f"LaTeX compilation attempt {attempt} for {name} using {engine}")
                pdf, log = await self._compile_once(engine, source, workdir, name)
                if pdf is not None:
                    return RenderResult(pdf=pdf, engine=engine, attempts=attempt, log=log)

                fixed = add_missing_packages(source, log)
                if fixed == source:
                    break
                source = fixed

        logger.error(f"LaTeX compilation failed for {name}: {log[-500:]}")
        raise UpstreamError("PDF compilation failed", details={"log": log[-2000:]})
