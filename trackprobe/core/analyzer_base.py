"""
Analyzer base interface for trackprobe.

Defines the contract shared by the tempo, key and loudness analyzers.
"""

import logging
import time
from abc import abstractmethod
from typing import Generic, Protocol, TypeVar

from trackprobe.core.models import SampleBuffer
from trackprobe.utils.errors import AnalyzerError

T = TypeVar('T')
T_co = TypeVar('T_co', covariant=True)


class Analyzer(Protocol[T_co]):
    """
    Structural protocol for analyzers.

    Anything with ``name``, ``version`` and ``analyze(buffer)`` fits;
    inheriting from BaseAnalyzer is optional.
    """

    @property
    def name(self) -> str:
        ...

    @property
    def version(self) -> str:
        ...

    def analyze(self, buffer: SampleBuffer) -> T_co:
        ...


class BaseAnalyzer(Generic[T]):
    """
    Template method wrapper: timing, logging and error wrapping around
    ``_analyze_impl``.

    Analyzers return sentinel values (None, -inf) for silence and short
    input themselves; anything that escapes ``_analyze_impl`` is a bug
    and surfaces as AnalyzerError.
    """

    def __init__(self, name: str, version: str):
        self._name = name
        self._version = version
        self.logger = logging.getLogger(f"analyzer.{name}")

    @property
    def name(self) -> str:
        return self._name

    @property
    def version(self) -> str:
        return self._version

    def analyze(self, buffer: SampleBuffer) -> T:
        """
        Run the analyzer on one buffer.

        Raises:
            AnalyzerError: If the implementation fails unexpectedly
        """
        start_time = time.perf_counter()

        try:
            self.logger.debug(
                f"Starting analysis: {len(buffer)} samples @ {buffer.sample_rate} Hz"
            )
            result = self._analyze_impl(buffer)

        except AnalyzerError:
            raise

        except Exception as e:
            self.logger.error(f"Analysis failed: {e}")
            raise AnalyzerError(
                f"{self.name} analysis failed: {e}",
                analyzer_name=self.name,
                original_error=e
            ) from e

        elapsed = time.perf_counter() - start_time
        self.logger.debug(f"Analysis complete in {elapsed:.3f}s: {result}")
        return result

    @abstractmethod
    def _analyze_impl(self, buffer: SampleBuffer) -> T:
        raise NotImplementedError
