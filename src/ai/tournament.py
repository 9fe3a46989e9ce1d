"""
Tournament Orchestrator
=======================

Evolves a population of paddles through repeated round-robin tournaments.

One generation:
    1. Reset per-generation stats (a seeded previous winner keeps its
       historical record, which is added back after the matches)
    2. Round robin: every ordered pair of distinct individuals plays once
    3. Compute fitness and sort
    4. Inject the all-time champion over the worst individual if absent
    5. Summarize the generation and update the all-time champion
    6. Snapshot the top 5 for display, save the top 3 models
    7. Evolve, then re-inject the champion if it fell out
    8. Record a frozen GenerationStats, advance the counter, update the ETA

State machine:
    IDLE → RUNNING ⇄ PAUSED
    RUNNING → COMPLETED (after the last generation)
    any → IDLE (stop)

Files written under the model directory:
    generation_N/rank_R_id_ID_fitness_F.bin   top 3 models per generation
    generation_N/rank_R_id_ID_metrics.txt
    tournament_top_R.bin, tournament_top_R_params.txt
    tournament_winner.bin, tournament_winner_stats.txt
    all_time_champion.bin, all_time_champion_stats.txt
    final_population.dat, tournament_summary.txt
"""

import os
import time
from collections import deque
from dataclasses import dataclass, asdict
from enum import Enum
from typing import List, Optional, Dict, Any

import numpy as np

from .genetics import GeneticParams
from .persistence import read_key_values, write_key_values
from .population import Individual, IndividualSnapshot, Population, is_valid_id
from src.game.match import MatchSimulator, MatchResult
from src.utils.logger import get_logger, log_generation_stats, log_model_event

import sys
sys.path.append('../..')
from config import Config

logger = get_logger(__name__)

WINNER_MODEL = 'tournament_winner.bin'
WINNER_STATS = 'tournament_winner_stats.txt'
CHAMPION_MODEL = 'all_time_champion.bin'
CHAMPION_STATS = 'all_time_champion_stats.txt'
FINAL_POPULATION = 'final_population.dat'
SUMMARY_FILE = 'tournament_summary.txt'


class TournamentMode(Enum):
    """
    Pairing schemes. Only EVOLUTIONARY (round robin plus evolution) is run;
    ROUND_ROBIN and SWISS are reserved names and rejected by TournamentManager.
    """
    ROUND_ROBIN = 'round_robin'
    SWISS = 'swiss'
    EVOLUTIONARY = 'evolutionary'


class TournamentState(Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    PAUSED = 'paused'
    COMPLETED = 'completed'


@dataclass
class TournamentConfig:
    """Tournament settings (defaults mirror Config)."""
    population_size: int = 16
    max_generations: int = 50
    points_per_match: int = 7
    speed_multiplier: float = 10.0
    elite_percent: float = 0.25
    mutation_rate: float = 0.1
    mode: TournamentMode = TournamentMode.EVOLUTIONARY

    @classmethod
    def from_config(cls, config: Config) -> 'TournamentConfig':
        return cls(
            population_size=config.POPULATION_SIZE,
            max_generations=config.MAX_GENERATIONS,
            points_per_match=config.WIN_SCORE,
            speed_multiplier=config.SPEED_MULTIPLIER,
            elite_percent=config.ELITE_PERCENT,
            mutation_rate=config.MUTATION_RATE,
        )


@dataclass(frozen=True)
class GenerationStats:
    """Summary of one completed generation. Immutable once recorded."""
    generation: int
    average_fitness: float
    best_fitness: float
    worst_fitness: float
    best_individual_id: str
    average_win_rate: float
    all_time_best_fitness: float
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _genes_pairs(genes: GeneticParams):
    return [
        ('LearningRate', genes.learning_rate),
        ('EpsilonDecay', genes.epsilon_decay),
        ('HiddenLayerSize', genes.hidden_layer_size),
        ('DiscountFactor', genes.discount_factor),
        ('BatchSize', genes.batch_size),
    ]


def _genes_from_values(values: Dict[str, str]) -> GeneticParams:
    defaults = GeneticParams()
    return GeneticParams(
        learning_rate=float(values.get('LearningRate', defaults.learning_rate)),
        epsilon_decay=float(values.get('EpsilonDecay', defaults.epsilon_decay)),
        hidden_layer_size=int(values.get('HiddenLayerSize', defaults.hidden_layer_size)),
        discount_factor=float(values.get('DiscountFactor', defaults.discount_factor)),
        batch_size=int(values.get('BatchSize', defaults.batch_size)),
    ).clamped()


class TournamentManager:
    """
    Drives a generational tournament and persists its best performers.

    Single-threaded: run_generation() blocks until the whole round robin is
    done, so pause/stop take effect between generations only.

    Example:
        >>> manager = TournamentManager(config)
        >>> manager.initialize()
        >>> manager.start()
        >>> while manager.run_generation():
        ...     print(manager.progress, manager.format_eta())
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        tournament_config: Optional[TournamentConfig] = None,
        model_dir: Optional[str] = None,
    ):
        self.config = config or Config()
        self.tournament_config = tournament_config or TournamentConfig.from_config(self.config)
        self.model_dir = model_dir or self.config.MODEL_DIR

        seeds = np.random.SeedSequence(self.config.SEED).spawn(2)
        self._population_rng = np.random.default_rng(seeds[0])
        self._match_rng = np.random.default_rng(seeds[1])

        self.state = TournamentState.IDLE
        self.status_message = 'Ready'
        self._build()

    def _build(self) -> None:
        tc = self.tournament_config
        if tc.mode is not TournamentMode.EVOLUTIONARY:
            raise ValueError(f"Unsupported tournament mode: {tc.mode.value}")
        self.population = Population(tc.population_size, self.config, rng=self._population_rng)
        self.simulator = MatchSimulator(self.config, win_score=tc.points_per_match, rng=self._match_rng)
        self._reset_progress()
        self.previous_winner: Optional[Individual] = None

    def _reset_progress(self) -> None:
        self.current_generation = 0
        self.current_match = 0
        self.total_matches = 0
        self.progress = 0.0
        self.stats_history: List[GenerationStats] = []
        self.cached_top: List[IndividualSnapshot] = []
        self._ranked_top: List[Individual] = []
        self.all_time_best_fitness = 0.0
        self.all_time_best: Optional[Individual] = None
        self.estimated_time_remaining = 0.0
        self._generation_times: deque = deque(maxlen=self.config.ETA_WINDOW)
        self._finalized = False

    def _path(self, *parts: str) -> str:
        return os.path.join(self.model_dir, *parts)

    # -------------------------------------------------------------------------
    # Setup and state transitions
    # -------------------------------------------------------------------------

    def set_config(self, tournament_config: TournamentConfig) -> None:
        """Replace the settings; the population must be initialized again."""
        if tournament_config.mode is not TournamentMode.EVOLUTIONARY:
            raise ValueError(f"Unsupported tournament mode: {tournament_config.mode.value}")
        self.tournament_config = tournament_config
        self._build()
        self.state = TournamentState.IDLE

    def initialize(self) -> None:
        """
        Build generation 0.

        Seeds from the previous tournament winner if one was saved, else from
        the saved top 5, else randomly.
        """
        self.previous_winner = None
        self.population.generation = 0
        if self._load_tournament_winner():
            winner = self.previous_winner
            self.population.initialize_from_base(winner, self.tournament_config.mutation_rate)
            seeded = winner.clone()
            seeded.generation = 0
            self.population.set_individual(0, seeded)
            self.status_message = f'Seeded from previous winner {winner.id}'
            logger.info(f"Tournament initialized with previous winner {winner.id} (fitness {winner.fitness:.4f})")
        elif self._load_top_persisted():
            self.status_message = 'Seeded from previous top models'
        else:
            self.population.initialize()
            self.status_message = 'Tournament initialized'

        self._reset_progress()
        self.state = TournamentState.IDLE

    def start(self) -> None:
        if self.state == TournamentState.RUNNING:
            return
        if len(self.population) == 0:
            self.initialize()
        self._generation_times.clear()
        self.estimated_time_remaining = 0.0
        self.state = TournamentState.RUNNING
        self.status_message = 'Tournament started'
        logger.info(f"Tournament started: {self.tournament_config}")

    def pause(self) -> None:
        if self.state == TournamentState.RUNNING:
            self.state = TournamentState.PAUSED
            self.status_message = 'Tournament paused'

    def resume(self) -> None:
        if self.state == TournamentState.PAUSED:
            self.state = TournamentState.RUNNING
            self.status_message = 'Tournament resumed'

    def stop(self) -> None:
        self.state = TournamentState.IDLE
        self.status_message = 'Tournament stopped'

    def tick(self) -> bool:
        """Run one generation if the tournament is running. Returns True if one ran."""
        if self.state != TournamentState.RUNNING:
            return False
        self.run_generation()
        return True

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    def run_generation(self) -> bool:
        """
        Run one complete generation.

        Returns:
            True if more generations remain
        """
        tc = self.tournament_config
        if self.current_generation >= tc.max_generations:
            self._complete()
            return False
        if self.state == TournamentState.IDLE:
            self.start()

        started = time.perf_counter()
        population = self.population

        # Historical record of a seeded winner survives the reset
        history = None
        winner_id = self.previous_winner.id if self.previous_winner is not None else None
        if winner_id is not None:
            index = population.index_of(winner_id)
            if index is not None:
                ind = population.individuals[index]
                history = (ind.wins, ind.losses, ind.total_matches)

        for individual in population:
            individual.reset_stats()

        self._run_round_robin()

        if history is not None:
            index = population.index_of(winner_id)
            if index is not None:
                ind = population.individuals[index]
                ind.wins += history[0]
                ind.losses += history[1]
                ind.total_matches += history[2]
                ind.win_rate = ind.wins / ind.total_matches if ind.total_matches else 0.0

        population.calculate_all_fitness()
        population.sort_by_fitness()

        champion = self.all_time_best
        if champion is not None and not population.contains(champion.id):
            copy = champion.clone()
            copy.generation = self.current_generation
            copy.reset_stats()
            population.replace_worst(copy)
            population.sort_by_fitness()

        summary = self._summarize_generation()

        if summary['best_fitness'] > self.all_time_best_fitness:
            self.all_time_best_fitness = summary['best_fitness']
            self.all_time_best = population.individuals[0].clone()
            logger.info(f"New all-time champion {self.all_time_best.id} "
                        f"(fitness {self.all_time_best_fitness:.4f})")

        self.cached_top = [ind.snapshot() for ind in population.individuals[:self.config.TOP_PERSISTED]]
        # Evolution builds new objects, so these keep their evaluated stats
        self._ranked_top = population.individuals[:self.config.TOP_PERSISTED]
        self._save_generation_models(self.config.TOP_MODELS_PER_GENERATION)

        population.evolve_next_generation(tc.elite_percent, tc.mutation_rate)

        champion = self.all_time_best
        if champion is not None and not population.contains(champion.id):
            copy = champion.clone()
            copy.generation = self.current_generation + 1
            copy.reset_stats()
            population.replace_worst(copy)

        self.current_generation += 1
        self.progress = self.current_generation / tc.max_generations

        elapsed = time.perf_counter() - started
        stats = GenerationStats(
            all_time_best_fitness=self.all_time_best_fitness,
            duration=elapsed,
            **summary,
        )
        self.stats_history.append(stats)
        log_generation_stats(stats)

        self._generation_times.append(elapsed)
        remaining = tc.max_generations - self.current_generation
        if remaining > 0:
            average = sum(self._generation_times) / len(self._generation_times)
            self.estimated_time_remaining = average * remaining
            self.status_message = f'Generation {self.current_generation}/{tc.max_generations} complete'
            return True

        self._complete()
        return False

    def _run_round_robin(self) -> None:
        """Every ordered pair of distinct individuals plays one match."""
        individuals = self.population.individuals
        n = len(individuals)
        self.total_matches = n * (n - 1)
        self.current_match = 0
        speed = self.tournament_config.speed_multiplier

        for i in range(n):
            for j in range(n):
                if i == j:
                    continue
                home, away = individuals[i], individuals[j]
                result = self.simulator.simulate(home.player, away.player, home.id, away.id, speed)
                self._record_result(home, away, result)
                self.current_match += 1

    @staticmethod
    def _record_result(home: Individual, away: Individual, result: MatchResult) -> None:
        # A draw counts as a loss for both
        home.record_match(result.winner_id == home.id)
        away.record_match(result.winner_id == away.id)

    def _summarize_generation(self) -> Dict[str, Any]:
        """Fitness figures of the sorted, evaluated population."""
        individuals = self.population.individuals
        return dict(
            generation=self.current_generation + 1,
            average_fitness=self.population.average_fitness,
            best_fitness=self.population.best_fitness,
            worst_fitness=individuals[-1].fitness,
            best_individual_id=individuals[0].id,
            average_win_rate=sum(ind.win_rate for ind in individuals) / len(individuals),
        )

    def _complete(self) -> None:
        self.state = TournamentState.COMPLETED
        self.status_message = 'Tournament completed'
        self.estimated_time_remaining = 0.0
        self.progress = min(1.0, self.current_generation / self.tournament_config.max_generations)
        if not self._finalized:
            self._finalize()

    def run_full_tournament(self) -> List[GenerationStats]:
        """Run generations until completion (or until paused/stopped)."""
        self.start()
        while self.state == TournamentState.RUNNING:
            self.run_generation()
        return list(self.stats_history)

    # -------------------------------------------------------------------------
    # Display accessors
    # -------------------------------------------------------------------------

    @property
    def max_generations(self) -> int:
        return self.tournament_config.max_generations

    @property
    def last_average_fitness(self) -> float:
        if self.stats_history:
            return self.stats_history[-1].average_fitness
        return self.population.average_fitness

    @property
    def last_best_fitness(self) -> float:
        if self.stats_history:
            return self.stats_history[-1].best_fitness
        return self.population.best_fitness

    def format_eta(self) -> str:
        if self.current_generation >= self.tournament_config.max_generations:
            return 'Completed'
        if self.current_generation == 0 or not self._generation_times:
            return 'Calculating...'

        total = int(self.estimated_time_remaining)
        hours, minutes, seconds = total // 3600, (total % 3600) // 60, total % 60
        if hours > 0:
            return f'{hours}h {minutes}m {seconds}s'
        if minutes > 0:
            return f'{minutes}m {seconds}s'
        return f'{seconds}s'

    def get_top_individuals(self, n: int = 5) -> List[IndividualSnapshot]:
        """Top n of the last generation's snapshot plus the all-time champion."""
        if self.cached_top:
            candidates = list(self.cached_top)
        else:
            self.population.sort_by_fitness()
            candidates = [ind.snapshot() for ind in self.population.individuals[:n]]

        champion = self.all_time_best
        if champion is not None and all(c.id != champion.id for c in candidates):
            candidates.append(champion.snapshot())

        candidates.sort(key=lambda c: c.fitness, reverse=True)
        return candidates[:n]

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _save_generation_models(self, top_n: int) -> None:
        generation = self.current_generation + 1
        gen_dir = self._path(f'generation_{generation}')
        for rank, ind in enumerate(self.population.individuals[:top_n], start=1):
            stem = f'rank_{rank}_id_{ind.id}'
            ind.agent.save_model(os.path.join(gen_dir, f'{stem}_fitness_{ind.fitness:.3f}.bin'))
            write_key_values(os.path.join(gen_dir, f'{stem}_metrics.txt'), [
                ('Individual ID', ind.id),
                ('Generation', generation),
                ('Rank', rank),
                ('Fitness', f'{ind.fitness:.4f}'),
                ('Win Rate', f'{ind.win_rate:.4f}'),
                ('Wins', ind.wins),
                ('Losses', ind.losses),
                ('Total Matches', ind.total_matches),
            ] + _genes_pairs(ind.genes))

    def _finalize(self) -> None:
        """Write the end-of-tournament artifacts."""
        self._finalized = True
        self.population.save(self._path(FINAL_POPULATION))
        self.save_top_for_persistence()
        self._write_summary()
        logger.info(f"Tournament completed after {self.current_generation} generations")

    def save_top_for_persistence(self) -> None:
        """
        Save top models, the tournament winner and the all-time champion.

        Ranks come from the last evaluated generation; before any generation
        has run the current population order is used.
        """
        ranked = self._ranked_top
        if not ranked:
            self.population.sort_by_fitness()
            ranked = self.population.individuals[:self.config.TOP_PERSISTED]

        for rank, ind in enumerate(ranked, start=1):
            ind.agent.save_model(self._path(f'tournament_top_{rank}.bin'))
            write_key_values(self._path(f'tournament_top_{rank}_params.txt'), [
                ('Rank', rank),
                ('ID', ind.id),
                ('Fitness', f'{ind.fitness:.4f}'),
                ('WinRate', f'{ind.win_rate:.4f}'),
            ] + _genes_pairs(ind.genes))

        if ranked:
            winner = ranked[0]
            winner.agent.save_model(self._path(WINNER_MODEL))
            write_key_values(self._path(WINNER_STATS), [
                ('ID', winner.id),
                ('Generation', winner.generation),
                ('Fitness', f'{winner.fitness:.4f}'),
                ('WinRate', f'{winner.win_rate:.4f}'),
                ('Wins', winner.wins),
                ('Losses', winner.losses),
                ('TotalMatches', winner.total_matches),
            ] + _genes_pairs(winner.genes), title='TOURNAMENT WINNER\n=================\n')

        champion = self.all_time_best
        if champion is not None:
            champion.agent.save_model(self._path(CHAMPION_MODEL))
            write_key_values(self._path(CHAMPION_STATS), [
                ('ID', champion.id),
                ('Generation', champion.generation),
                ('Fitness', f'{champion.fitness:.4f}'),
                ('Win Rate', f'{champion.win_rate:.4f}'),
                ('Record', f'{champion.wins}-{champion.losses}'),
            ], title='ALL-TIME CHAMPION\n================\n')
            log_model_event('champion', self._path(CHAMPION_MODEL), id=champion.id,
                            fitness=f'{champion.fitness:.4f}')

    def _write_summary(self) -> None:
        if not self.stats_history:
            return
        tc = self.tournament_config
        initial = self.stats_history[0].best_fitness
        final = self.stats_history[-1].best_fitness
        improvement = (final - initial) / initial * 100.0 if initial > 0 else 0.0

        lines = [
            'Tournament Summary',
            '==================',
            '',
            'Configuration:',
            f'  Population Size: {tc.population_size}',
            f'  Generations: {len(self.stats_history)}',
            f'  Elite Percent: {tc.elite_percent * 100:g}%',
            f'  Mutation Rate: {tc.mutation_rate * 100:g}%',
            '',
            'Results:',
            f'  Initial Best Fitness: {initial:.4f}',
            f'  Final Best Fitness: {final:.4f}',
            f'  Improvement: {improvement:.1f}%',
            '',
            'Generation History:',
        ]
        lines.extend(
            f'  Gen {s.generation}: Best={s.best_fitness:.3f} Avg={s.average_fitness:.3f}'
            for s in self.stats_history
        )
        path = self._path(SUMMARY_FILE)
        try:
            os.makedirs(self.model_dir, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                f.write('\n'.join(lines) + '\n')
        except OSError as e:
            logger.error(f"Failed to write tournament summary {path}: {e}")

    def _load_tournament_winner(self) -> bool:
        """Load the previous tournament's winner into self.previous_winner."""
        model_path = self._path(WINNER_MODEL)
        if not os.path.exists(model_path):
            return False
        values = read_key_values(self._path(WINNER_STATS))
        if values is None:
            return False

        identity = values.get('ID', '')
        if not is_valid_id(identity):
            logger.warning(f"Ignoring previous winner with malformed id {identity!r}")
            return False

        try:
            genes = _genes_from_values(values)
            winner = self.population.create_individual(
                genes, generation=int(values.get('Generation', 0)), identity=identity)
            winner.fitness = float(values.get('Fitness', 0.0))
            winner.win_rate = float(values.get('WinRate', 0.0))
            winner.wins = int(values.get('Wins', 0))
            winner.losses = int(values.get('Losses', 0))
            winner.total_matches = int(values.get('TotalMatches', 0))
        except ValueError as e:
            logger.warning(f"Malformed winner stats: {e}")
            return False

        if not winner.agent.load_model(model_path):
            logger.warning(f"Previous winner {identity} keeps a fresh network")
        self.previous_winner = winner
        return True

    def _load_top_persisted(self) -> bool:
        """Rebuild the population from saved top models, filling the rest randomly."""
        if not os.path.exists(self._path('tournament_top_1.bin')):
            return False

        population = self.population
        population.clear()
        for rank in range(1, self.config.TOP_PERSISTED + 1):
            model_path = self._path(f'tournament_top_{rank}.bin')
            if not os.path.exists(model_path):
                break
            values = read_key_values(self._path(f'tournament_top_{rank}_params.txt')) or {}
            try:
                genes = _genes_from_values(values)
            except ValueError as e:
                logger.warning(f"Malformed params for rank {rank}: {e}")
                genes = GeneticParams()

            saved_id = values.get('ID', '')
            if is_valid_id(saved_id) and not population.contains(saved_id):
                individual = population.create_individual(genes, generation=0, identity=saved_id)
            else:
                individual = population.create_individual(genes, generation=0)
            individual.agent.load_model(model_path)
            population.add(individual)
            if len(population) >= population.size:
                break

        loaded = len(population)
        population.fill_random()
        logger.info(f"Loaded {loaded} models from previous tournament")
        return loaded > 0
