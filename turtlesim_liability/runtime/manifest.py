"""
Build Manifest
==============

Reads the package's CMakeLists.txt and package.xml and answers the
packaging questions:

- Which components does the package build against? (rospy)
- Which files are installed, and where do they end up?
- Does the source tree actually contain every installed file?

Catkin destinations are expanded the standard way:

    ${CATKIN_PACKAGE_SHARE_DESTINATION} -> share/<project>
    ${CATKIN_PACKAGE_BIN_DESTINATION}   -> lib/<project>
"""

import os
import re
import shutil
import stat
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

COMMAND = re.compile(r"(\w+)\s*\(([^()]*)\)", re.DOTALL)
VARIABLE = re.compile(r"\$\{(\w+)\}")

INSTALL_KINDS = ("FILES", "PROGRAMS", "DIRECTORY", "TARGETS")


@dataclass
class InstallRule:
    """One install() or catkin_install_python() call."""
    kind: str
    sources: List[str]
    destination: str
    executable: bool = False


@dataclass
class BuildManifest:
    """What CMakeLists.txt declares."""
    project: str
    components: List[str] = field(default_factory=list)
    install_rules: List[InstallRule] = field(default_factory=list)
    include_dirs: List[str] = field(default_factory=list)
    cmake_minimum_required: Optional[str] = None
    catkin_package: bool = False

    def variables(self) -> Dict[str, str]:
        return {
            "PROJECT_NAME": self.project,
            "CATKIN_PACKAGE_SHARE_DESTINATION": f"share/{self.project}",
            "CATKIN_PACKAGE_BIN_DESTINATION": f"lib/{self.project}",
            "CATKIN_PACKAGE_LIB_DESTINATION": "lib",
            "CATKIN_PACKAGE_PYTHON_DESTINATION": f"lib/python3/dist-packages/{self.project}",
        }

    def expand(self, value: str) -> str:
        """Expand ${VAR} references; unknown variables are left as-is."""
        variables = self.variables()
        return VARIABLE.sub(lambda m: variables.get(m.group(1), m.group(0)), value)

    def install_targets(self, prefix) -> Dict[str, Path]:
        """Map each installed source (relative path) to its installed path."""
        prefix = Path(prefix)
        targets: Dict[str, Path] = {}
        for rule in self.install_rules:
            destination = prefix / self.expand(rule.destination)
            for source in rule.sources:
                targets[source] = destination / Path(source).name
        return targets

    def executables(self) -> List[str]:
        return [s for rule in self.install_rules if rule.executable for s in rule.sources]


def _strip_comments(text: str) -> str:
    return "\n".join(line.split("#", 1)[0] for line in text.splitlines())


def _parse_install(command: str, tokens: List[str]) -> InstallRule:
    kind = None
    sources: List[str] = []
    destination = None
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token in INSTALL_KINDS:
            kind = token
        elif token == "DESTINATION":
            if i + 1 >= len(tokens):
                raise ValueError(f"{command}: DESTINATION without a value")
            destination = tokens[i + 1]
            i += 1
        elif kind is not None and destination is None:
            sources.append(token)
        i += 1

    if kind is None or destination is None:
        raise ValueError(f"{command}: expected FILES/PROGRAMS ... DESTINATION ...")
    if not sources:
        raise ValueError(f"{command}: no sources listed")

    return InstallRule(
        kind=kind,
        sources=sources,
        destination=destination,
        executable=kind == "PROGRAMS",
    )


def parse_manifest(text: str) -> BuildManifest:
    """
    Parse CMakeLists.txt content.

    Raises:
        ValueError: If there is no project() or an install rule is malformed
    """
    manifest: Optional[BuildManifest] = None
    pending: List[tuple] = []

    for match in COMMAND.finditer(_strip_comments(text)):
        command = match.group(1).lower()
        tokens = match.group(2).split()
        if command == "project":
            if not tokens:
                raise ValueError("project() without a name")
            manifest = BuildManifest(project=tokens[0])
        else:
            pending.append((command, tokens))

    if manifest is None:
        raise ValueError("CMakeLists.txt declares no project()")

    for command, tokens in pending:
        if command == "cmake_minimum_required" and "VERSION" in tokens:
            manifest.cmake_minimum_required = tokens[tokens.index("VERSION") + 1]
        elif command == "find_package" and tokens and tokens[0] == "catkin":
            if "COMPONENTS" in tokens:
                manifest.components.extend(tokens[tokens.index("COMPONENTS") + 1:])
        elif command in ("install", "catkin_install_python"):
            manifest.install_rules.append(_parse_install(command, tokens))
        elif command == "catkin_package":
            manifest.catkin_package = True
        elif command == "include_directories":
            manifest.include_dirs.extend(tokens)

    return manifest


def read_manifest(path) -> BuildManifest:
    """Read a CMakeLists.txt file."""
    return parse_manifest(Path(path).read_text())


def read_package_xml(path) -> Dict[str, object]:
    """
    Read package.xml metadata and dependencies.

    Returns:
        Dict with name, version, buildtool_depends, build_depends, exec_depends
    """
    root = ET.parse(Path(path)).getroot()
    if root.tag != "package":
        raise ValueError(f"package.xml root must be <package>, got <{root.tag}>")

    def texts(tag: str) -> List[str]:
        return [(e.text or "").strip() for e in root.findall(tag)]

    depends = texts("depend")
    return {
        "name": (root.findtext("name") or "").strip(),
        "version": (root.findtext("version") or "").strip(),
        "buildtool_depends": texts("buildtool_depend"),
        "build_depends": texts("build_depend") + depends,
        "exec_depends": texts("exec_depend") + texts("run_depend") + depends,
    }


def check_install_layout(root, manifest: Optional[BuildManifest] = None) -> List[str]:
    """
    List installed sources missing from the source tree.

    Executables must also carry an executable bit. An empty list means
    the package can be installed as declared.
    """
    root = Path(root)
    manifest = manifest or read_manifest(root / "CMakeLists.txt")
    problems: List[str] = []
    for rule in manifest.install_rules:
        for source in rule.sources:
            path = root / source
            if not path.exists():
                problems.append(f"missing: {source}")
            elif rule.executable and not os.access(path, os.X_OK):
                problems.append(f"not executable: {source}")
    return problems


def install(root, prefix, manifest: Optional[BuildManifest] = None) -> List[Path]:
    """
    Copy every declared source to its destination under prefix.

    catkin_package() also installs package.xml to share/<project>, which is
    how $(find <project>) locates an installed package.

    Raises:
        FileNotFoundError: If a declared source is missing
    """
    root = Path(root)
    manifest = manifest or read_manifest(root / "CMakeLists.txt")
    installed: List[Path] = []
    prefix_path = Path(prefix)
    executables = set(manifest.executables())

    for source, target in manifest.install_targets(prefix).items():
        source_path = root / source
        if not source_path.exists():
            raise FileNotFoundError(f"Declared install source not found: {source}")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source_path, target)
        if source in executables:
            mode = target.stat().st_mode
            target.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        installed.append(target)

    package_xml = root / "package.xml"
    if manifest.catkin_package and package_xml.is_file():
        target = prefix_path / manifest.expand("${CATKIN_PACKAGE_SHARE_DESTINATION}") / "package.xml"
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(package_xml, target)
        installed.append(target)

    return installed
