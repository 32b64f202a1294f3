import json
import logging
import pickle
import tempfile
import time

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

console_logger = logging.getLogger(__name__)


class BaseLogger(ABC):
    """Abstract base class defining the logger API for planning runs."""

    def __init__(self, output_dir: Path | str):
        self.output_dir = Path(output_dir)

    @abstractmethod
    def log(self, data: dict[str, Any]) -> None:
        """Log metrics and data."""

    @abstractmethod
    def log_hyperparams(self, data: dict[str, Any]) -> None:
        """Log hyperparameters."""

    @abstractmethod
    def log_pickle(self, name: str, obj: Any, use_temp_file: bool = True) -> None:
        """
        Log a pickle file.

        Args:
            name: The name of the pickle file.
            obj: The object to be pickled.
            use_temp_file: Whether to use a temporary file. Otherwise, `name` is
                saved relative to `output_dir`.
        """

    @abstractmethod
    def log_plan(
        self,
        plan_data: dict[str, Any],
        name: str = "plan",
        output_dir: Path | None = None,
    ) -> Path:
        """
        Log a serialized fortress plan as JSON.

        Args:
            plan_data: The plan dictionary, e.g. from `Plan.to_dict()`.
            name: File name without extension.
            output_dir: Optional output directory. Otherwise, saves to the
                logger's default output directory.

        Returns:
            Path to the saved JSON file.
        """

    @abstractmethod
    def log_text(self, name: str, text: str) -> Path:
        """
        Log a text artifact (e.g. an ASCII level map).

        Args:
            name: File name relative to `output_dir`.
            text: The content.

        Returns:
            Path to the saved file.
        """


class ConsoleLogger(BaseLogger):
    """Logger implementation that logs to console and saves files locally."""

    def __init__(self, output_dir: Path | str):
        super().__init__(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self._step_counter = 0
        """Counter for the number of steps logged."""

    def log(self, data: dict[str, Any]) -> None:
        """Log metrics to console."""
        console_logger.info(f"Step {self._step_counter}: {data}")
        self._step_counter += 1

    def log_hyperparams(self, data: dict[str, Any]) -> None:
        """Log hyperparameters to console."""
        console_logger.info(f"Hyperparameters: {data}")

    def log_pickle(self, name: str, obj: Any, use_temp_file: bool = True) -> None:
        """
        Log a pickle file to local filesystem.

        Args:
            name: The name of the pickle file.
            obj: The object to be pickled.
            use_temp_file: Whether to use a temporary file. Otherwise, `name` is
                saved relative to `output_dir`.
        """
        if use_temp_file:
            with tempfile.NamedTemporaryFile(
                "wb",
                prefix=f"{name}_{self._step_counter}__",
                suffix=".pkl",
                delete=False,
            ) as temp_file:
                pickle.dump(obj, temp_file)
                file_path = temp_file.name
        else:
            if not name.endswith(".pkl"):
                console_logger.warning(
                    f"Name {name} does not end with '.pkl'. Appending '.pkl'."
                )
                name += ".pkl"
            file_path = str(self.output_dir / name)
            with open(file_path, "wb") as f:
                pickle.dump(obj, f)

        console_logger.info(f"Saved pickle file: {file_path}")

    def log_plan(
        self,
        plan_data: dict[str, Any],
        name: str = "plan",
        output_dir: Path | None = None,
    ) -> Path:
        """
        Log a serialized fortress plan as JSON to local filesystem.

        A ``timestamp`` key is added to the saved copy.

        Args:
            plan_data: The plan dictionary, e.g. from `Plan.to_dict()`.
            name: File name without extension.
            output_dir: Optional output directory. Otherwise, saves to the
                logger's default output directory.

        Returns:
            Path to the saved JSON file.
        """
        save_dir = output_dir if output_dir is not None else self.output_dir
        save_dir.mkdir(parents=True, exist_ok=True)

        if not name.endswith(".json"):
            name += ".json"
        file_path = save_dir / name

        data = dict(plan_data)
        data["timestamp"] = time.time()
        with open(file_path, "w") as f:
            json.dump(data, f, indent=2)

        console_logger.info(f"Saved plan: {file_path}")
        return file_path

    def log_text(self, name: str, text: str) -> Path:
        """Save a text artifact relative to `output_dir`."""
        file_path = self.output_dir / name
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "w") as f:
            f.write(text)

        console_logger.info(f"Saved text file: {file_path}")
        return file_path


class FileLoggingContext:
    """Context manager to redirect all loggers to a run-specific log file.

    This class captures ALL logging that occurs within its context.
    """

    def __init__(self, log_file_path: Path, suppress_stdout: bool = False):
        """
        Args:
            log_file_path: Path to the run log file
            suppress_stdout: If True, prevents logs from also going to stdout
        """
        self.log_file_path = log_file_path
        self.suppress_stdout = suppress_stdout
        self.file_handler = None
        self.original_handlers = []

    def __enter__(self):
        """Set up file handler and redirect all loggers."""
        # Create file handler with consistent formatting.
        self.file_handler = logging.FileHandler(self.log_file_path)
        self.file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

        # Get root logger to capture everything.
        root_logger = logging.getLogger()
        root_logger.addHandler(self.file_handler)

        if self.suppress_stdout:
            # Save original handlers and remove console handlers temporarily.
            self.original_handlers = [
                handler
                for handler in root_logger.handlers
                if handler is not self.file_handler
            ]
            for handler in self.original_handlers:
                root_logger.removeHandler(handler)

        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Clean up handlers and restore original state."""
        root_logger = logging.getLogger()

        if self.file_handler in root_logger.handlers:
            root_logger.removeHandler(self.file_handler)

        if self.suppress_stdout and self.original_handlers:
            # Restore original handlers.
            for handler in self.original_handlers:
                if handler not in root_logger.handlers:
                    root_logger.addHandler(handler)

        # Close the file handler.
        if self.file_handler:
            self.file_handler.close()
