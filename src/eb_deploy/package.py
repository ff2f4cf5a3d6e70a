"""Locate or build the deployment package (source bundle archive)."""
import os
import re
import logging
import zipfile
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, List, Optional, Union

from eb_deploy.exceptions import PreconditionError

logger = logging.getLogger(__name__)

# Never shipped, even when the caller passes no patterns of their own.
DEFAULT_EXCLUDE_PATTERNS = [
    '.git/**',
    '.env',
    '.env.*',
    '**/*.pem',
    '**/*.key',
    '.aws/**',
    '.ssh/**',
    '.npmrc',
    # archives left behind by earlier builds
    'deploy-*.zip',
]

UNSAFE_FILENAME_CHARS = re.compile(r'[^A-Za-z0-9._-]')


def split_patterns(exclude_patterns: str) -> List[str]:
    """Split a comma-separated pattern list, dropping blanks."""
    return [p.strip() for p in exclude_patterns.split(',') if p.strip()]


def is_excluded(relative_path: str, patterns: Iterable[str]) -> bool:
    """Match a workspace-relative POSIX path against glob patterns.

    ``dir/**`` excludes everything beneath dir; ``**/x`` also matches x at
    the root.
    """
    for pattern in patterns:
        if fnmatchcase(relative_path, pattern):
            return True
        if pattern.startswith('**/') and fnmatchcase(relative_path, pattern[3:]):
            return True
        if pattern.endswith('/**'):
            prefix = pattern[:-3]
            parts = relative_path.split('/')
            if any(fnmatchcase('/'.join(parts[:i]), prefix) for i in range(1, len(parts))):
                return True
    return False


def _is_excluded_dir(relative_dir: str, patterns: Iterable[str]) -> bool:
    return any(
        pattern.endswith('/**') and fnmatchcase(relative_dir, pattern[:-3])
        for pattern in patterns
    )


def resolve_package_path(package_path: Union[str, Path], workspace_root: Union[str, Path]) -> Path:
    """Validate a caller-supplied package path.

    Raises:
        PreconditionError: If it is missing, not a regular file, or outside
            workspace_root
    """
    root = Path(workspace_root).resolve()
    candidate = Path(package_path)
    if not candidate.is_absolute():
        candidate = root / candidate
    resolved = candidate.resolve()

    try:
        resolved.relative_to(root)
    except ValueError:
        raise PreconditionError(
            f"deployment-package-path '{package_path}' resolves outside the workspace {root}"
        ) from None

    if not resolved.exists():
        raise PreconditionError(
            f"deployment-package-path '{package_path}' does not exist. "
            "Either provide a valid file path or omit deployment-package-path to have "
            "a package created automatically."
        )

    if not resolved.is_file():
        raise PreconditionError(
            f"deployment-package-path '{package_path}' is not a file. "
            "It must point to an existing deployment archive file (e.g., .zip, .war)."
        )

    return resolved


def create_zip_file(source_dir: Union[str, Path], zip_path: Union[str, Path],
                    exclude_patterns: Iterable[str]) -> int:
    """Zip source_dir into zip_path, skipping excluded files.

    Returns:
        Number of files written
    """
    source = Path(source_dir).resolve()
    target = Path(zip_path).resolve()
    patterns = list(exclude_patterns)
    count = 0

    with zipfile.ZipFile(target, 'w', compression=zipfile.ZIP_DEFLATED) as zf:
        for dirpath, dirnames, filenames in os.walk(source):
            current = Path(dirpath)
            rel_dir = current.relative_to(source).as_posix()
            rel_dir = '' if rel_dir == '.' else rel_dir

            # Prune excluded directories so they are never walked
            dirnames[:] = sorted(
                d for d in dirnames
                if not _is_excluded_dir(f"{rel_dir}/{d}" if rel_dir else d, patterns)
            )

            for filename in sorted(filenames):
                file_path = current / filename
                if file_path.resolve() == target:
                    continue
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if is_excluded(rel_path, patterns):
                    logger.debug(f"Excluding {rel_path}")
                    continue
                zf.write(file_path, rel_path)
                count += 1

    return count


def create_deployment_package(package_path: Optional[str], version_label: str,
                              exclude_patterns: str = "",
                              workspace_root: Union[str, Path] = ".",
                              output_dir: Optional[Union[str, Path]] = None) -> Path:
    """Return the archive to deploy, building one from the workspace if needed.

    Args:
        package_path: Existing archive to use as-is, or None to build one
        version_label: Used to name a built archive deploy-<label>.zip
        exclude_patterns: Comma-separated globs, added to the built-in list
        workspace_root: Directory that is zipped and that package_path must
            stay inside
        output_dir: Where to write a built archive (default workspace_root)
    """
    if package_path:
        resolved = resolve_package_path(package_path, workspace_root)
        logger.info(f"📦 Using existing deployment package: {resolved}")
        return resolved

    # Labels may contain characters such as "/" that cannot appear in a file name
    safe_label = UNSAFE_FILENAME_CHARS.sub('_', version_label)
    zip_path = Path(output_dir or workspace_root) / f"deploy-{safe_label}.zip"
    logger.info(f"📦 Creating deployment package: {zip_path.name}")

    patterns = DEFAULT_EXCLUDE_PATTERNS + split_patterns(exclude_patterns)
    count = create_zip_file(workspace_root, zip_path, patterns)
    logger.info(f"✅ Packaged {count} files into {zip_path}")
    return zip_path
