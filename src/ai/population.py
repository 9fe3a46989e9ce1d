"""
Genetic Population
==================

A population of Q-learning paddles evolved by a genetic algorithm over
their hyperparameters.

Evolution step:
    1. Compute fitness for every individual
    2. Sort by fitness (descending)
    3. Copy the elites (top elite_percent, at least one) with stats reset
    4. Fill the rest with offspring: crossover of two elite parents, then
       mutation, with a freshly initialized network

Elites keep their trained weights. Offspring only inherit hyperparameters.

Population file (little-endian):
    int32 size, int32 generation, int32 next_id_counter
    per individual:
        int32 id_length, id bytes, int32 generation,
        GeneticParams (20 bytes), float32 fitness,
        int32 wins, int32 losses, int32 total_matches, float32 win_rate
"""

import os
import string
import struct
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .agent import QLearningAgent
from .genetics import GeneticParams, crossover, mutate
from src.game.pong import AIPlayer, DifficultyLevel
from src.utils.logger import get_logger

import sys
sys.path.append('../..')
from config import Config

logger = get_logger(__name__)

ID_ALPHABET = string.digits + string.ascii_uppercase
ID_LENGTH = 4

_HEADER = struct.Struct('<iii')
_INT = struct.Struct('<i')
_STATS = struct.Struct('<fiiif')


def is_valid_id(identity: str) -> bool:
    return len(identity) == ID_LENGTH and all(c in ID_ALPHABET for c in identity)


@dataclass(frozen=True)
class IndividualSnapshot:
    """Read-only view of an individual for display."""
    id: str
    generation: int
    fitness: float
    win_rate: float
    wins: int
    losses: int
    total_matches: int
    genes: GeneticParams


class Individual:
    """
    One member of the population: identity, genome, paddle and match record.

    Attributes:
        id (str): 4-character identity from 0-9A-Z
        generation (int): Generation the individual was created (or promoted) in
        genes (GeneticParams): Hyperparameters used to build its agent
        player (AIPlayer): The paddle and its learning agent
    """

    def __init__(
        self,
        identity: str,
        generation: int,
        genes: GeneticParams,
        config: Optional[Config] = None,
        rng: Optional[np.random.Generator] = None,
        player: Optional[AIPlayer] = None,
    ):
        self.id = identity
        self.generation = generation
        self.genes = genes
        self.config = config or Config()

        if player is None:
            agent = QLearningAgent(
                hidden_size=genes.hidden_layer_size,
                learning_rate=genes.learning_rate,
                epsilon_decay=genes.epsilon_decay,
                discount_factor=genes.discount_factor,
                batch_size=genes.batch_size,
                config=self.config,
                rng=rng,
            )
            player = AIPlayer(
                0, 0, self.config.PADDLE_WIDTH, self.config.PADDLE_HEIGHT,
                agent=agent,
                difficulty=DifficultyLevel.HARD,
                config=self.config,
            )
        self.player = player

        self.fitness = 0.0
        self.wins = 0
        self.losses = 0
        self.total_matches = 0
        self.win_rate = 0.0

    @property
    def agent(self) -> QLearningAgent:
        return self.player.agent

    def record_match(self, won: bool) -> None:
        self.total_matches += 1
        if won:
            self.wins += 1
        else:
            self.losses += 1
        self.win_rate = self.wins / self.total_matches

    def calculate_fitness(self) -> float:
        """Fitness = 70% round-robin win rate + 30% agent fitness."""
        self.fitness = 0.7 * self.win_rate + 0.3 * self.agent.calculate_fitness()
        return self.fitness

    def reset_stats(self) -> None:
        self.wins = 0
        self.losses = 0
        self.total_matches = 0
        self.win_rate = 0.0
        self.fitness = 0.0

    def clone(self) -> 'Individual':
        """Deep copy: the clone's player, agent and network are independent."""
        dup = Individual(self.id, self.generation, self.genes, self.config, player=self.player.clone())
        dup.fitness = self.fitness
        dup.wins = self.wins
        dup.losses = self.losses
        dup.total_matches = self.total_matches
        dup.win_rate = self.win_rate
        return dup

    def snapshot(self) -> IndividualSnapshot:
        return IndividualSnapshot(
            id=self.id,
            generation=self.generation,
            fitness=self.fitness,
            win_rate=self.win_rate,
            wins=self.wins,
            losses=self.losses,
            total_matches=self.total_matches,
            genes=self.genes,
        )

    def __repr__(self) -> str:
        return (f"Individual({self.id}, gen={self.generation}, fitness={self.fitness:.3f}, "
                f"record={self.wins}-{self.losses})")


class Population:
    """
    Fixed-size population of individuals.

    Example:
        >>> pop = Population(16, config, rng=np.random.default_rng(0))
        >>> pop.initialize()
        >>> pop.evolve_next_generation(elite_percent=0.25, mutation_rate=0.1)
    """

    def __init__(self, size: int, config: Optional[Config] = None, rng: Optional[np.random.Generator] = None):
        if size < 1:
            raise ValueError(f"Population size must be positive, got {size}")
        self.size = size
        self.config = config or Config()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.individuals: List[Individual] = []
        self.generation = 0
        self.next_id_counter = 0
        self._issued_ids = set()

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    def _child_rng(self) -> np.random.Generator:
        return np.random.default_rng(int(self.rng.integers(0, 2**63 - 1)))

    def generate_new_id(self) -> str:
        """Return a 4-character id not yet issued by this population."""
        self.next_id_counter += 1
        while True:
            identity = ''.join(ID_ALPHABET[i] for i in self.rng.integers(0, len(ID_ALPHABET), size=ID_LENGTH))
            if identity not in self._issued_ids:
                self._issued_ids.add(identity)
                return identity

    def claim_id(self, identity: str) -> None:
        """Mark an externally supplied id as taken."""
        self._issued_ids.add(identity)

    def create_individual(
        self,
        genes: GeneticParams,
        generation: Optional[int] = None,
        identity: Optional[str] = None,
    ) -> Individual:
        """Build an individual with a fresh network. A supplied identity is claimed as is."""
        if identity is None:
            identity = self.generate_new_id()
        else:
            self.claim_id(identity)
        return Individual(
            identity,
            self.generation if generation is None else generation,
            genes,
            self.config,
            rng=self._child_rng(),
        )

    def clear(self) -> None:
        """Remove every individual and forget issued ids."""
        self.individuals = []
        self.next_id_counter = 0
        self._issued_ids = set()

    def add(self, individual: Individual) -> None:
        self.claim_id(individual.id)
        self.individuals.append(individual)

    def fill_random(self) -> None:
        """Top the population up to its target size with random genomes."""
        while len(self.individuals) < self.size:
            self.individuals.append(self.create_individual(GeneticParams.random(self.rng)))

    def initialize(self) -> None:
        """Fill the population with random genomes."""
        self.clear()
        self.fill_random()
        logger.info(f"Population initialized with {self.size} individuals")

    def initialize_from_base(self, base: Individual, mutation_rate: float = 0.15) -> None:
        """Fill the population with mutations of a base individual's genes."""
        self.individuals = []
        self.next_id_counter = 0
        self._issued_ids = {base.id}
        for _ in range(self.size):
            genes = mutate(base.genes, mutation_rate, self.rng)
            self.individuals.append(self.create_individual(genes))
        logger.info(f"Population initialized with {self.size} individuals based on {base.id}")

    # -------------------------------------------------------------------------
    # Fitness
    # -------------------------------------------------------------------------

    def calculate_all_fitness(self) -> None:
        for individual in self.individuals:
            individual.calculate_fitness()

    def sort_by_fitness(self) -> None:
        """Sort descending by fitness (stable, so ties keep their order)."""
        self.individuals.sort(key=lambda ind: ind.fitness, reverse=True)

    def get_best(self) -> Individual:
        self.sort_by_fitness()
        return self.individuals[0]

    @property
    def average_fitness(self) -> float:
        if not self.individuals:
            return 0.0
        return sum(ind.fitness for ind in self.individuals) / len(self.individuals)

    @property
    def best_fitness(self) -> float:
        if not self.individuals:
            return 0.0
        return max(ind.fitness for ind in self.individuals)

    def elite_count(self, elite_percent: float) -> int:
        # Rounding first keeps 100 * 0.29 at 29 rather than 28
        return max(1, int(round(self.size * elite_percent, 9)))

    # -------------------------------------------------------------------------
    # Evolution
    # -------------------------------------------------------------------------

    def evolve_next_generation(self, elite_percent: float = 0.25, mutation_rate: float = 0.1) -> None:
        """Replace the population with elites plus mutated offspring."""
        self.calculate_all_fitness()
        self.sort_by_fitness()

        elite_count = min(self.elite_count(elite_percent), len(self.individuals))
        next_generation = self.generation + 1

        elites = self.individuals[:elite_count]
        next_gen: List[Individual] = []
        for individual in elites:
            elite = individual.clone()
            elite.generation = next_generation
            elite.reset_stats()
            next_gen.append(elite)

        while len(next_gen) < self.size:
            parent_a = elites[int(self.rng.integers(elite_count))]
            parent_b = elites[int(self.rng.integers(elite_count))]
            child_genes = mutate(crossover(parent_a.genes, parent_b.genes, self.rng), mutation_rate, self.rng)
            next_gen.append(self.create_individual(child_genes, generation=next_generation))

        self.individuals = next_gen
        self.generation = next_generation
        logger.debug(f"Generation {self.generation} created with {elite_count} elite individuals")

    # -------------------------------------------------------------------------
    # Lookup and replacement
    # -------------------------------------------------------------------------

    def index_of(self, identity: str) -> Optional[int]:
        for i, individual in enumerate(self.individuals):
            if individual.id == identity:
                return i
        return None

    def contains(self, identity: str) -> bool:
        return self.index_of(identity) is not None

    def set_individual(self, index: int, individual: Individual) -> None:
        self.claim_id(individual.id)
        self.individuals[index] = individual

    def replace_worst(self, individual: Individual) -> None:
        """Sort by fitness and overwrite the lowest-ranked slot."""
        self.sort_by_fitness()
        self.set_individual(len(self.individuals) - 1, individual)

    def __len__(self) -> int:
        return len(self.individuals)

    def __iter__(self):
        return iter(self.individuals)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def to_bytes(self) -> bytes:
        parts = [_HEADER.pack(len(self.individuals), self.generation, self.next_id_counter)]
        for ind in self.individuals:
            encoded_id = ind.id.encode('ascii')
            parts.append(_INT.pack(len(encoded_id)))
            parts.append(encoded_id)
            parts.append(_INT.pack(ind.generation))
            parts.append(ind.genes.to_bytes())
            parts.append(_STATS.pack(ind.fitness, ind.wins, ind.losses, ind.total_matches, ind.win_rate))
        return b''.join(parts)

    def save(self, filepath: str) -> bool:
        """Write the population (identities, genes and statistics) to disk."""
        try:
            parent = os.path.dirname(filepath)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(filepath, 'wb') as f:
                f.write(self.to_bytes())
        except OSError as e:
            logger.error(f"Failed to save population to {filepath}: {e}")
            return False
        logger.info(f"Population saved to {filepath}")
        return True

    def load(self, filepath: str) -> bool:
        """
        Replace this population with one read from disk.

        Individuals get fresh networks built from their genes. Malformed ids
        are replaced with new ones. On any failure the population is left
        unchanged and False is returned.
        """
        try:
            with open(filepath, 'rb') as f:
                data = f.read()
        except OSError as e:
            logger.warning(f"Failed to load population from {filepath}: {e}")
            return False

        try:
            count, generation, next_id_counter = _HEADER.unpack_from(data, 0)
            if count < 0:
                raise ValueError(f"Invalid population size {count}")
            offset = _HEADER.size
            records = []
            for _ in range(count):
                (id_len,) = _INT.unpack_from(data, offset)
                offset += _INT.size
                if not 0 <= id_len <= len(data) - offset:
                    raise ValueError(f"Invalid id length {id_len}")
                raw_id = data[offset:offset + id_len].decode('ascii', errors='replace')
                offset += id_len
                (ind_generation,) = _INT.unpack_from(data, offset)
                offset += _INT.size
                genes = GeneticParams.from_bytes(data, offset)
                offset += GeneticParams.encoded_size()
                stats = _STATS.unpack_from(data, offset)
                offset += _STATS.size
                records.append((raw_id, ind_generation, genes, stats))
        except (struct.error, ValueError) as e:
            logger.warning(f"Corrupt population file {filepath}: {e}")
            return False

        self.individuals = []
        self._issued_ids = set()
        self.size = max(count, 1)
        self.generation = generation
        # Regenerated ids below count on top of the saved counter
        self.next_id_counter = next_id_counter
        for raw_id, ind_generation, genes, stats in records:
            if is_valid_id(raw_id) and raw_id not in self._issued_ids:
                identity = raw_id
                self.claim_id(identity)
            else:
                logger.warning(f"Replacing malformed id {raw_id!r}")
                identity = self.generate_new_id()
            individual = Individual(identity, ind_generation, genes, self.config, rng=self._child_rng())
            (individual.fitness, individual.wins, individual.losses,
             individual.total_matches, individual.win_rate) = stats
            self.individuals.append(individual)

        logger.info(f"Population loaded from {filepath} ({count} individuals, generation {generation})")
        return True
