"""
AI Module
=========

Learning and evolution components for the adaptive paddle.

Classes:
    NeuralNetwork     - Fully connected network with manual backprop
    ReplayBuffer      - Fixed-capacity experience memory
    QLearningAgent    - Epsilon-greedy Q-learning agent
    GeneticParams     - Evolvable hyperparameter genome

Modules that also depend on src.game are imported directly:
    src.ai.population  - Individual, Population
    src.ai.tournament  - TournamentManager
    src.ai.trainer     - Trainer
"""

from .network import NeuralNetwork
from .replay_buffer import Experience, ReplayBuffer
from .agent import QLearningAgent, FieldDimensions
from .genetics import GeneticParams

__all__ = [
    'NeuralNetwork',
    'Experience',
    'ReplayBuffer',
    'QLearningAgent',
    'FieldDimensions',
    'GeneticParams',
]
