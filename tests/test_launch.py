"""
Tests for Launch Files
======================

The packaged launch files and the launch loader.
"""

from pathlib import Path

import pytest

from turtlesim_liability.runtime import LaunchError, find_package, load_launch

ROOT = Path(__file__).parent.parent
LAUNCH_DIR = ROOT / "launch"


def write_launch(tmp_path, name, body):
    path = tmp_path / name
    path.write_text(f"<launch>\n{body}\n</launch>\n")
    return path


def write_package(directory, name):
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "package.xml").write_text(
        f'<package format="2"><name>{name}</name><version>0.0.1</version></package>\n'
    )
    return directory


@pytest.fixture
def empty_search_path(monkeypatch):
    """No other ROS packages visible."""
    monkeypatch.setenv("ROS_PACKAGE_PATH", "")
    monkeypatch.setenv("CMAKE_PREFIX_PATH", "")


class TestPackagedLaunchFiles:
    """Test trader.launch and worker.launch as shipped."""

    def test_worker_launch(self):
        description = load_launch(LAUNCH_DIR / "worker.launch")
        worker = description.node("worker")

        assert worker.pkg == "turtlesim_liability"
        assert worker.type == "worker_node"
        assert worker.params == {
            "model": "turtlesim",
            "min_cost": 15,
            "asking_cost": 40,
            "max_turns": 10,
            "turtle": "turtle1",
        }

    def test_trader_launch_includes_worker(self):
        description = load_launch(LAUNCH_DIR / "trader.launch")

        assert [n.type for n in description.nodes] == ["trader_node", "worker_node"]
        trader = description.node("trader")
        assert trader.params["budget"] == 30
        assert trader.params["task"] == {"shape": "square", "size": 2.0}

    def test_trader_args_flow_into_include(self):
        description = load_launch(LAUNCH_DIR / "trader.launch", {"max_turns": "4", "budget": "50"})

        assert description.node("trader").params["budget"] == 50
        assert description.node("worker").params["max_turns"] == 4

    def test_nodes_of_type(self):
        description = load_launch(LAUNCH_DIR / "trader.launch")
        assert [n.name for n in description.nodes_of_type("worker_node")] == ["worker"]


class TestLaunchLoader:
    """Test launch parsing rules."""

    def test_param_types(self, tmp_path):
        path = write_launch(tmp_path, "types.launch", """
  <node pkg="p" type="t" name="n">
    <param name="i" value="3" type="int"/>
    <param name="d" value="3" type="double"/>
    <param name="b" value="True" type="bool"/>
    <param name="s" value="3" type="str"/>
    <param name="auto_int" value="7"/>
    <param name="auto_float" value="0.5"/>
    <param name="auto_text" value="turtle1"/>
  </node>""")
        params = load_launch(path).node("n").params
        assert params == {
            "i": 3, "d": 3.0, "b": True, "s": "3",
            "auto_int": 7, "auto_float": 0.5, "auto_text": "turtle1",
        }

    def test_invalid_bool(self, tmp_path):
        path = write_launch(tmp_path, "bad.launch", """
  <node pkg="p" type="t" name="n"><param name="b" value="maybe" type="bool"/></node>""")
        with pytest.raises(LaunchError):
            load_launch(path)

    def test_required_arg_missing(self, tmp_path):
        path = write_launch(tmp_path, "req.launch", '  <arg name="budget"/>')
        with pytest.raises(LaunchError, match="required arg"):
            load_launch(path)

    def test_fixed_arg_cannot_be_overridden(self, tmp_path):
        path = write_launch(tmp_path, "fixed.launch", '  <arg name="model" value="turtlesim"/>')
        assert load_launch(path).args == {"model": "turtlesim"}
        with pytest.raises(LaunchError, match="fixed"):
            load_launch(path, {"model": "drone"})

    def test_undefined_arg_substitution(self, tmp_path):
        path = write_launch(tmp_path, "undef.launch", """
  <node pkg="p" type="t" name="n"><param name="x" value="$(arg nope)"/></node>""")
        with pytest.raises(LaunchError, match="undefined arg"):
            load_launch(path)

    def test_relative_include(self, tmp_path):
        write_launch(tmp_path, "child.launch", """
  <arg name="who" default="child"/>
  <node pkg="p" type="t" name="$(arg who)"/>""")
        parent = write_launch(tmp_path, "parent.launch", """
  <include file="child.launch"><arg name="who" value="kid"/></include>""")
        assert [n.name for n in load_launch(parent).nodes] == ["kid"]

    def test_rosparam_mapping_merges(self, tmp_path):
        path = write_launch(tmp_path, "ros.launch", """
  <node pkg="p" type="t" name="n"><rosparam>{budget: 30, model: turtlesim}</rosparam></node>""")
        assert load_launch(path).node("n").params == {"budget": 30, "model": "turtlesim"}

    def test_wrong_root(self, tmp_path):
        path = tmp_path / "x.launch"
        path.write_text("<robot/>")
        with pytest.raises(LaunchError):
            load_launch(path)

    def test_malformed_xml(self, tmp_path):
        path = tmp_path / "x.launch"
        path.write_text("<launch>")
        with pytest.raises(LaunchError):
            load_launch(path)

    def test_node_missing_type(self, tmp_path):
        path = write_launch(tmp_path, "x.launch", '  <node pkg="p" name="n"/>')
        with pytest.raises(LaunchError, match="missing 'type'"):
            load_launch(path)


class TestFindPackage:
    """Test $(find <pkg>) resolution."""

    def test_source_checkout_found_by_hint(self, empty_search_path):
        assert find_package("turtlesim_liability", hint=ROOT) == ROOT.resolve()

    def test_hint_with_other_name_ignored(self, empty_search_path, tmp_path):
        write_package(tmp_path / "here", "here_pkg")
        with pytest.raises(LaunchError, match="package 'there_pkg' not found"):
            find_package("there_pkg", hint=tmp_path / "here")

    def test_unknown_package_in_include(self, empty_search_path, tmp_path):
        """An include into another package must not fall back to this one."""
        package = write_package(tmp_path / "main_pkg", "main_pkg")
        (package / "launch").mkdir()
        write_launch(package / "launch", "worker.launch", '  <node pkg="p" type="t" name="local"/>')
        parent = write_launch(package / "launch", "parent.launch", """
  <include file="$(find other_pkg)/launch/worker.launch"/>""")

        with pytest.raises(LaunchError, match=r"\$\(find other_pkg\)"):
            load_launch(parent)

    def test_other_package_on_ros_package_path(self, monkeypatch, tmp_path):
        other = write_package(tmp_path / "src" / "other_pkg", "other_pkg")
        (other / "launch").mkdir()
        write_launch(other / "launch", "child.launch", '  <node pkg="other_pkg" type="t" name="remote"/>')

        package = write_package(tmp_path / "main_pkg", "main_pkg")
        (package / "launch").mkdir()
        write_launch(package / "launch", "child.launch", '  <node pkg="main_pkg" type="t" name="local"/>')
        parent = write_launch(package / "launch", "parent.launch", """
  <include file="$(find other_pkg)/launch/child.launch"/>""")

        monkeypatch.setenv("ROS_PACKAGE_PATH", str(tmp_path / "src"))
        monkeypatch.setenv("CMAKE_PREFIX_PATH", "")
        assert [n.name for n in load_launch(parent).nodes] == ["remote"]

    def test_installed_share_directory(self, monkeypatch, tmp_path):
        """An install prefix on CMAKE_PREFIX_PATH holds share/<pkg>."""
        share = write_package(tmp_path / "install" / "share" / "other_pkg", "other_pkg")
        monkeypatch.setenv("ROS_PACKAGE_PATH", "")
        monkeypatch.setenv("CMAKE_PREFIX_PATH", str(tmp_path / "install"))
        assert find_package("other_pkg") == share.resolve()

    def test_missing_launch_file(self, tmp_path):
        with pytest.raises(LaunchError, match="not found"):
            load_launch(tmp_path / "nope.launch")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
