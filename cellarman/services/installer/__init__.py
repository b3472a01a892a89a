"""包安装编排

对外入口:
    from cellarman.services.installer import FormulaInstaller, InstallerMode

    report = FormulaInstaller(formula, mode=InstallerMode(build_from_source=True)).run()
"""

from cellarman.services.installer.models import (
    InstallContext,
    InstallerMode,
    InstallReport,
    InstallState,
)
from cellarman.services.installer.orchestrator import FormulaInstaller

__all__ = [
    "FormulaInstaller",
    "InstallContext",
    "InstallerMode",
    "InstallReport",
    "InstallState",
]
