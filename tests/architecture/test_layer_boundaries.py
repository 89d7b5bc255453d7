"""
Layer boundaries of the pricing packages.

1. pricing_kernel/** may NOT import pricing_config or pricing_services.
   The kernel never depends upward.

2. pricing_kernel/domain/** is the pure core: no SQLAlchemy, no YAML,
   and no imports of the kernel's db/, models/, selectors/ or services/.

3. pricing_config/** may NOT import pricing_services.

4. No source file calls eval, exec or compile; expressions are only ever
   run through the compiled instruction program.

These tests read source code via AST and never import the packages.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {filepath.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestKernelNoUpwardDependencies:

    def test_kernel_does_not_import_config_or_services(self):
        violations = _violations("pricing_kernel", ("pricing_config", "pricing_services"))
        assert not violations, (
            "Kernel boundary violation: pricing_kernel/** must not import "
            "pricing_config or pricing_services:\n" + "\n".join(violations)
        )

    def test_packages_exist(self):
        assert _python_files("pricing_kernel")
        assert _python_files("pricing_config")
        assert _python_files("pricing_services")


class TestDomainIsPure:

    FORBIDDEN = (
        "sqlalchemy",
        "yaml",
        "pricing_kernel.db",
        "pricing_kernel.models",
        "pricing_kernel.selectors",
        "pricing_kernel.services",
    )

    def test_domain_has_no_infrastructure_imports(self):
        violations = _violations("pricing_kernel/domain", self.FORBIDDEN)
        assert not violations, (
            "pricing_kernel/domain/** must stay free of I/O dependencies:\n"
            + "\n".join(violations)
        )


class TestConfigDoesNotImportServices:

    def test_config_does_not_import_services(self):
        violations = _violations("pricing_config", ("pricing_services",))
        assert not violations, "\n".join(violations)


class TestNoDynamicEvaluation:

    BANNED_CALLS = {"eval", "exec", "compile"}

    def test_no_eval_exec_or_compile(self):
        violations: list[str] = []
        for package in ("pricing_kernel", "pricing_config", "pricing_services"):
            for filepath in _python_files(package):
                tree = ast.parse(filepath.read_text(), filename=str(filepath))
                for node in ast.walk(tree):
                    if (
                        isinstance(node, ast.Call)
                        and isinstance(node.func, ast.Name)
                        and node.func.id in self.BANNED_CALLS
                    ):
                        violations.append(
                            f"  {filepath.relative_to(ROOT)}:{node.lineno} calls {node.func.id}()"
                        )
        assert not violations, "\n".join(violations)
