import importlib.util
from pathlib import Path
from typing import List, Optional, Sequence
from validation.validation_helpers import ValidationIssue, is_readable_file, is_writable_dir

TEXT_EXTS = {".pts", ".xyz", ".txt", ".asc", ".csv"}
OPEN3D_EXTS = {".ply", ".pcd"}

def open3d_available() -> bool:
    return importlib.util.find_spec("open3d") is not None

def validate_source(path: Path, role: str) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    if not path.exists():
        issues.append(ValidationIssue(str(path), "MISSING_SOURCE", "error", f"Missing {role} cloud: {path}"))
    elif not is_readable_file(path):
        issues.append(ValidationIssue(str(path), "SOURCE_NOT_READABLE", "error", f"Cannot read {role} cloud: {path}"))
    elif path.suffix.lower() not in TEXT_EXTS | OPEN3D_EXTS:
        issues.append(ValidationIssue(str(path), "UNKNOWN_EXTENSION", "warning",
                                      f"Unknown extension for {role} cloud, reading as text: {path}"))
    return issues

def validate_destination(output: Path, sources: Sequence[Path]) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    parent = output.parent
    if output.is_dir():
        issues.append(ValidationIssue(str(output), "OUTPUT_IS_DIRECTORY", "error", f"Output is a directory: {output}"))
    elif not parent.is_dir():
        issues.append(ValidationIssue(str(output), "OUTPUT_DIR_MISSING", "error", f"Output directory does not exist: {parent}"))
    elif not is_writable_dir(parent):
        issues.append(ValidationIssue(str(output), "OUTPUT_NOT_WRITABLE", "error", f"Output directory is not writable: {parent}"))
    resolved = output.resolve()
    for src in sources:
        if src.resolve() == resolved:
            issues.append(ValidationIssue(str(output), "OUTPUT_OVERWRITES_INPUT", "error",
                                          f"Output would overwrite input cloud: {src}"))
    return issues

def validate_export(export_cloud: Path, output: Path, sources: Sequence[Path]) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    if export_cloud.suffix.lower() not in OPEN3D_EXTS:
        issues.append(ValidationIssue(str(export_cloud), "UNSUPPORTED_FORMAT", "error",
                                      f"Export cloud must be one of {sorted(OPEN3D_EXTS)}: {export_cloud}"))
    if export_cloud.resolve() == output.resolve():
        issues.append(ValidationIssue(str(export_cloud), "EXPORT_IS_OUTPUT", "error",
                                      f"Export cloud and output are the same file: {output}"))
    issues.extend(validate_destination(export_cloud, sources))
    return issues

def validate_open3d_needs(sources: Sequence[Path], export_cloud: Optional[Path], index: str) -> List[ValidationIssue]:
    """Everything that can only run with Open3D installed."""
    needs = [str(p) for p in sources if p.suffix.lower() in OPEN3D_EXTS]
    if export_cloud is not None:
        needs.append(str(export_cloud))
    if index == "flann":
        needs.append("--index flann")
    if not needs or open3d_available():
        return []
    return [ValidationIssue(item, "OPEN3D_MISSING", "error",
                            f"Open3D is not installed (pip install open3d) but is needed for {item}")
            for item in needs]

def validate_input(target: Path, colored: Sequence[Path], output: Path, *,
                   export_cloud: Optional[Path] = None, index: str = "kdtree") -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    sources = [target, *colored]
    issues.extend(validate_source(target, "target"))
    for path in colored:
        issues.extend(validate_source(path, "colored"))
    issues.extend(validate_destination(output, sources))
    if export_cloud is not None:
        issues.extend(validate_export(export_cloud, output, sources))
    issues.extend(validate_open3d_needs(sources, export_cloud, index))
    return issues
