"""
Paddle Evolution - Source Package
=================================

Adaptive Pong opponents trained by Q-learning and evolved by tournament.

Modules:
    ai/     - Neural network, agent, population, tournament and trainer
    game/   - Headless Pong objects and the match simulator
    utils/  - Logging
"""

__version__ = "1.0.0"
