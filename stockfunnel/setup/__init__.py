from __future__ import annotations

from stockfunnel.setup.classifier import SetupClassifier
from stockfunnel.setup.detector import LongtermSetupDetector, SwingSetupDetector

__all__ = ["LongtermSetupDetector", "SetupClassifier", "SwingSetupDetector"]
