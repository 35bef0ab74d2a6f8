"""
DQN Trader - Source Package
===========================

Deep Q-Learning agent that learns to hold, buy or sell a single asset
against a price series.

Modules:
    ai/      - Replay memory, Q-network, agent and training loop
    market/  - Price-series environments and state encoding
    utils/   - Logging helpers
"""

__version__ = "1.0.0"
