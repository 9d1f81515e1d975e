# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from plotdirector.services.llm.cancellation import CancellationToken, run_cancellable
from plotdirector.services.llm.client import ConnectionTestResult, VendorClient
from plotdirector.services.llm.errors import (
    ConfigurationError,
    DirectorError,
    ErrorSummary,
    GenerationAborted,
    GenerationCancelled,
    GenerationTimedOut,
    MalformedResponseError,
    TransportError,
    classify_error,
)
from plotdirector.services.llm.vendors import LLMConfig

__all__ = [
    "CancellationToken",
    "ConfigurationError",
    "ConnectionTestResult",
    "DirectorError",
    "ErrorSummary",
    "GenerationAborted",
    "GenerationCancelled",
    "GenerationTimedOut",
    "LLMConfig",
    "MalformedResponseError",
    "TransportError",
    "VendorClient",
    "classify_error",
    "run_cancellable",
]
