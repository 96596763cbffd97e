"""
Turtlesim Liability
===================

A liability market for a simulated turtle: a trader demands a drawing
task, a worker offers to do it, a lighthouse records the agreement in a
ledger, and the worker's signed report finalizes it.

Layers:

    protocol       What is said?
    fsm            Is this liability allowed to continue?
    agents         What does this node decide?
    coordination   Is this match allowed?
    ledger         What was agreed, and is it done?
    context        What does the content hash point to?
    turtlesim      What does the robot do?
    transport      How do nodes talk?
    orchestration  What runs next?
    evaluation     What happened?
    runtime        How is it started?
"""

__version__ = "0.1.0"
