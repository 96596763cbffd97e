"""
runtime - The Shell
===================

Question this layer answers:
"How is it started?"

Run methods:
    1. Installed scripts (see CMakeLists.txt):
       trader_node                 # trader.launch (includes worker.launch)
       worker_node                 # worker.launch plus traders from --launch files

    2. Programmatic:
       python -m turtlesim_liability.runtime.runner --mode demo
       python -m turtlesim_liability.runtime.runner --mode nodes

What the runtime does:
- Load YAML configuration
- Parse launch files into node specifications
- Read the build manifest and check the install layout
- Bring nodes up on a bus

What the runtime does NOT do:
- Decide costs (that's agents)
- Manage turns (that's orchestration)
- Validate messages (that's protocol)
"""

from .config import Config, LedgerConfig, LimitsConfig, MarketConfig, TurtlesimConfig, load_config
from .launch import LaunchDescription, LaunchError, NodeSpec, find_package, load_launch
from .manifest import (
    BuildManifest,
    InstallRule,
    check_install_layout,
    install,
    parse_manifest,
    read_manifest,
    read_package_xml,
)
from .nodes import Lighthouse, TraderNode, WorkerNode
from .runner import (
    LiabilityRuntime,
    RuntimeConfig,
    Session,
    default_launch_file,
    main,
    trader_main,
    worker_main,
)

__all__ = [
    "Config",
    "MarketConfig",
    "LimitsConfig",
    "LedgerConfig",
    "TurtlesimConfig",
    "load_config",
    "LaunchDescription",
    "LaunchError",
    "NodeSpec",
    "load_launch",
    "find_package",
    "BuildManifest",
    "InstallRule",
    "parse_manifest",
    "read_manifest",
    "read_package_xml",
    "check_install_layout",
    "install",
    "TraderNode",
    "WorkerNode",
    "Lighthouse",
    "LiabilityRuntime",
    "RuntimeConfig",
    "Session",
    "default_launch_file",
    "main",
    "trader_main",
    "worker_main",
]
