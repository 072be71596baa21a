"""
RL Algorithm Modules.

Each algorithm is self-contained in algorithms/<name>/. The fruit merge
agent is algorithms/dqn/.
"""
