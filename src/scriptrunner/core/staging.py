"""Temporary script files.

Scripts are written under <tmp>/script-runner/ with a random name and removed
by the command registry once their command has finished.
"""

import tempfile
import uuid
from pathlib import Path

from scriptrunner.core.logger import ScriptRunnerLogger


class ScriptStaging:
    """Writes scripts to a temp directory and removes them later."""

    def __init__(
        self,
        base_dir: str | Path | None = None,
        dir_name: str = "script-runner",
        logger: ScriptRunnerLogger | None = None,
    ) -> None:
        """Initialize staging.

        Args:
            base_dir: Parent of the staging directory (defaults to the system temp dir)
            dir_name: Name of the staging directory
            logger: Structured logger
        """
        self.base_dir = Path(base_dir) if base_dir is not None else None
        self.dir_name = dir_name
        self.logger = logger or ScriptRunnerLogger()

    def temp_directory(self) -> Path:
        """Return the staging directory, creating it if needed."""
        base = self.base_dir if self.base_dir is not None else Path(tempfile.gettempdir())
        directory = base / self.dir_name
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def new_script_path(self, extension: str) -> Path:
        script_id = uuid.uuid4().hex[:8]
        return self.temp_directory() / f"script-{script_id}{extension}"

    def write(self, path: str | Path, content: str) -> None:
        # newline="" keeps CRLF/LF exactly as prepared for the target shell
        Path(path).write_text(content, encoding="utf-8", newline="")

    def stage(self, content: str, extension: str) -> Path:
        """Write ``content`` to a fresh script path and return it.

        Raises:
            OSError: If the directory or file cannot be written
        """
        path = self.new_script_path(extension)
        self.write(path, content)
        self.logger.debug("Script staged", script_path=str(path), size=len(content))
        return path

    def remove(self, path: str | Path) -> bool:
        """Delete a staged script. Never raises.

        Returns:
            True if a file was deleted
        """
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            self.logger.warn("Failed to remove script", script_path=str(path), error=str(e))
            return False
        self.logger.debug("Script removed", script_path=str(path))
        return True
