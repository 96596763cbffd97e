"""
Launch File Loader
==================

Reads roslaunch XML descriptors into node specifications.

Supported elements:

    <arg name="budget" default="30"/>           overridable argument
    <arg name="model" value="turtlesim"/>       fixed argument
    <node pkg=".." type=".." name=".." output="screen">
        <param name="budget" value="$(arg budget)" type="int"/>
        <rosparam param="task">{shape: square, size: 2.0}</rosparam>
    </node>
    <include file="$(find turtlesim_liability)/launch/worker.launch">
        <arg name="min_cost" value="20"/>
    </include>

Untyped param values are typed the way roslaunch does it, by YAML rules.

$(find <pkg>) resolves like rospack: the package that holds the launch
file, then ROS_PACKAGE_PATH, then <prefix>/share/<pkg> for every prefix on
CMAKE_PREFIX_PATH and the running interpreter's prefix. A directory is a
package when its package.xml carries that name.
"""

import os
import re
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .manifest import read_package_xml

SUBSTITUTION = re.compile(r"\$\((\w+)\s+([^)]+)\)")


@dataclass
class NodeSpec:
    """One <node> element."""
    pkg: str
    type: str
    name: str
    output: str = "log"
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LaunchDescription:
    """Everything a launch file (and its includes) declares."""
    path: Path
    args: Dict[str, str] = field(default_factory=dict)
    nodes: List[NodeSpec] = field(default_factory=list)

    def node(self, name: str) -> Optional[NodeSpec]:
        for spec in self.nodes:
            if spec.name == name:
                return spec
        return None

    def nodes_of_type(self, node_type: str) -> List[NodeSpec]:
        return [spec for spec in self.nodes if spec.type == node_type]


class LaunchError(ValueError):
    """Malformed launch file or unresolved substitution."""


def package_root(launch_path: Path) -> Path:
    """Launch files live in <package>/launch/."""
    return launch_path.resolve().parent.parent


def package_name(directory: Path) -> Optional[str]:
    """Name from directory/package.xml, None if it is not a package."""
    manifest = Path(directory) / "package.xml"
    if not manifest.is_file():
        return None
    try:
        return read_package_xml(manifest)["name"] or None
    except (ET.ParseError, ValueError):
        return None


def _search_path(name: str) -> List[Path]:
    candidates: List[Path] = []
    for entry in os.environ.get("ROS_PACKAGE_PATH", "").split(os.pathsep):
        if entry:
            candidates.extend([Path(entry), Path(entry) / name])
    prefixes = [p for p in os.environ.get("CMAKE_PREFIX_PATH", "").split(os.pathsep) if p]
    prefixes.append(sys.prefix)
    candidates.extend(Path(prefix) / "share" / name for prefix in prefixes)
    return candidates


def find_package(name: str, hint: Optional[Path] = None) -> Path:
    """
    Directory of ROS package `name`.

    Args:
        name: Package name as in package.xml
        hint: Directory to try first, usually the package being loaded

    Raises:
        LaunchError: If no directory on the search path holds the package
    """
    candidates = ([Path(hint)] if hint is not None else []) + _search_path(name)
    for candidate in candidates:
        if package_name(candidate) == name:
            return candidate.resolve()
    raise LaunchError(f"package '{name}' not found")


def _substitute(text: str, args: Dict[str, str], launch_path: Path) -> str:
    def replace(match: "re.Match") -> str:
        command, operand = match.group(1), match.group(2).strip()
        if command == "arg":
            if operand not in args:
                raise LaunchError(f"{launch_path.name}: undefined arg '{operand}'")
            return args[operand]
        if command == "find":
            try:
                return str(find_package(operand, hint=package_root(launch_path)))
            except LaunchError as e:
                raise LaunchError(f"{launch_path.name}: $(find {operand}): {e}") from e
        raise LaunchError(f"{launch_path.name}: unsupported substitution $({command})")

    return SUBSTITUTION.sub(replace, text)


def _typed_value(raw: str, param_type: Optional[str]) -> Any:
    if param_type in (None, "auto"):
        return yaml.safe_load(raw) if raw.strip() else ""
    if param_type == "int":
        return int(raw)
    if param_type == "double":
        return float(raw)
    if param_type == "bool":
        if raw.strip().lower() not in ("true", "false"):
            raise LaunchError(f"invalid bool value '{raw}'")
        return raw.strip().lower() == "true"
    if param_type == "str":
        return raw
    if param_type == "yaml":
        return yaml.safe_load(raw)
    raise LaunchError(f"unsupported param type '{param_type}'")


def _resolve_args(root: ET.Element, overrides: Dict[str, str], launch_path: Path) -> Dict[str, str]:
    args: Dict[str, str] = {}
    for element in root.findall("arg"):
        name = element.get("name")
        if not name:
            raise LaunchError(f"{launch_path.name}: <arg> without name")
        if element.get("value") is not None:
            if name in overrides:
                raise LaunchError(f"{launch_path.name}: arg '{name}' is fixed and cannot be overridden")
            args[name] = _substitute(element.get("value"), args, launch_path)
        elif name in overrides:
            args[name] = str(overrides[name])
        elif element.get("default") is not None:
            args[name] = _substitute(element.get("default"), args, launch_path)
        else:
            raise LaunchError(f"{launch_path.name}: required arg '{name}' not set")
    return args


def _parse_node(element: ET.Element, args: Dict[str, str], launch_path: Path) -> NodeSpec:
    for attribute in ("pkg", "type", "name"):
        if not element.get(attribute):
            raise LaunchError(f"{launch_path.name}: <node> missing '{attribute}'")

    spec = NodeSpec(
        pkg=element.get("pkg"),
        type=element.get("type"),
        name=_substitute(element.get("name"), args, launch_path),
        output=element.get("output", "log"),
    )

    for param in element.findall("param"):
        name = param.get("name")
        if not name or param.get("value") is None:
            raise LaunchError(f"{launch_path.name}: <param> needs name and value")
        raw = _substitute(param.get("value"), args, launch_path)
        spec.params[name] = _typed_value(raw, param.get("type"))

    for rosparam in element.findall("rosparam"):
        body = _substitute(rosparam.text or "", args, launch_path)
        value = yaml.safe_load(body) if body.strip() else None
        target = rosparam.get("param")
        if target:
            spec.params[target] = value
        elif isinstance(value, dict):
            spec.params.update(value)
        elif value is not None:
            raise LaunchError(f"{launch_path.name}: <rosparam> without param must hold a mapping")

    return spec


def load_launch(path, args: Optional[Dict[str, str]] = None) -> LaunchDescription:
    """
    Parse a launch file and its includes.

    Args:
        path: Launch file path
        args: Overrides for <arg default=...> values

    Raises:
        LaunchError: If the file is malformed or an arg is unresolved
    """
    launch_path = Path(path)
    if not launch_path.is_file():
        raise LaunchError(f"launch file not found: {launch_path}")
    try:
        root = ET.parse(launch_path).getroot()
    except ET.ParseError as e:
        raise LaunchError(f"{launch_path.name}: {e}") from e
    if root.tag != "launch":
        raise LaunchError(f"{launch_path.name}: root element must be <launch>, got <{root.tag}>")

    resolved = _resolve_args(root, args or {}, launch_path)
    description = LaunchDescription(path=launch_path, args=resolved)

    for element in root:
        if element.tag == "node":
            description.nodes.append(_parse_node(element, resolved, launch_path))
        elif element.tag == "include":
            include_file = Path(_substitute(element.get("file", ""), resolved, launch_path))
            if not include_file.is_absolute():
                include_file = launch_path.parent / include_file
            include_args = {
                a.get("name"): _substitute(a.get("value", ""), resolved, launch_path)
                for a in element.findall("arg")
            }
            included = load_launch(include_file, include_args)
            description.nodes.extend(included.nodes)
        elif element.tag in ("arg",):
            continue
        else:
            raise LaunchError(f"{launch_path.name}: unsupported element <{element.tag}>")

    return description
