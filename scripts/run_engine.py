#!/usr/bin/env python3
"""Run the coordination engine against a synthetic swarm.

Agents start scattered around the origin, follow the combined steering
force each tick, bid on auctions and acknowledge every command, so the
whole pipeline (formation, forces, election, auctions, metrics, tuning)
runs without any transport. Time is simulated, so the run is fast and
repeatable for a given seed.

Usage:
    python scripts/run_engine.py -n 8 --ticks 300
    python scripts/run_engine.py -n 6 --mission "Search and rescue" --wind 25
"""

import argparse
import logging
import math
import sys
from pathlib import Path

import numpy as np

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from swarm_engine.allocation.capabilities import capabilities_for, compatibility_score, estimate_duration
from swarm_engine.core import (
    Agent,
    AgentCategory,
    EngineConfig,
    EnvironmentalData,
    FormationType,
    Mission,
    Swarm,
    Vector3,
)
from swarm_engine.runtime import SwarmCoordinator, configure_logging

logger = logging.getLogger(__name__)

CATEGORIES = list(AgentCategory)


class SimClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, dt: float) -> None:
        self.now += dt


def make_agents(count: int, rng: np.random.Generator, altitude: float):
    agents = []
    for i in range(count):
        x, y = rng.uniform(-60.0, 60.0, size=2)
        agents.append(Agent(
            agent_id=f"agent-{i:02d}",
            category=CATEGORIES[i % len(CATEGORIES)],
            position=Vector3(float(x), float(y), altitude),
            heading=0.0,
            speed=0.0,
            battery=float(rng.uniform(60.0, 100.0)),
            signal=float(rng.uniform(70.0, 100.0)),
            mission_count=int(rng.integers(0, 40)),
        ))
    return agents


def step_agents(coordinator: SwarmCoordinator, dt: float) -> None:
    """Move every agent along its combined force, capped at swarm speed."""
    max_speed = coordinator.swarm.parameters.speed
    for agent in coordinator.agents():
        forces = coordinator.last_forces.get(agent.agent_id)
        if forces is None or agent.position is None:
            continue
        velocity = forces.combined.limit(max_speed)
        speed = velocity.magnitude()
        heading = math.degrees(math.atan2(velocity.y, velocity.x)) if speed > 0 else agent.heading
        coordinator.submit_telemetry(agent.with_changes(
            position=agent.position + velocity * dt,
            heading=heading,
            speed=speed,
        ))


def place_bids(coordinator: SwarmCoordinator, bid_seen: set) -> None:
    agents = {a.agent_id: a for a in coordinator.agents()}
    for auction in coordinator.auctions.active_auctions():
        if auction.auction_id in bid_seen:
            continue
        bid_seen.add(auction.auction_id)
        for bidder_id in auction.eligible_bidders:
            agent = agents.get(bidder_id)
            if agent is None:
                continue
            coordinator.submit_bid(
                auction.auction_id,
                bidder_id,
                compatibility_score(agent, auction.task),
                {c.skill: c.proficiency for c in capabilities_for(agent.category)},
                estimate_duration(auction.task),
            )


def run(args) -> int:
    config = EngineConfig.from_env()
    rng = np.random.default_rng(args.seed)
    clock = SimClock(1_000.0)

    agents = make_agents(args.num_agents, rng, altitude=100.0)
    swarm = Swarm(
        swarm_id="alpha",
        agent_ids=tuple(a.agent_id for a in agents),
        formation=FormationType(args.formation),
    )

    with SwarmCoordinator(swarm, config, clock) as coordinator:
        outbound = coordinator.bus.subscribe()
        for agent in agents:
            coordinator.submit_telemetry(agent)
        if args.wind > 0 or args.visibility < 10:
            coordinator.set_environment(EnvironmentalData(
                wind_speed=args.wind, wind_direction="NE", visibility=args.visibility,
            ))

        coordinator.initialize()
        execution = coordinator.assign_mission(Mission(
            mission_id="m-001",
            name=args.mission,
            threat_level=args.threat,
            duration_hours=1.0,
        ))
        logger.info(
            f"Mission {execution.mission_id}: {execution.category.value}, "
            f"{len(execution.tasks)} tasks, formation {swarm.formation.value}"
        )

        dt = config.loop.fast_period
        slow_every = max(1, int(round(config.loop.fast_rate / config.loop.slow_rate)))
        bid_seen = set()
        for i in range(args.ticks):
            coordinator.tick()
            step_agents(coordinator, dt)
            place_bids(coordinator, bid_seen)
            for message in outbound.drain():
                if message.ack_required:
                    coordinator.bus.ack(message.message_id)
            if i % slow_every == 0:
                coordinator.slow_tick()
            clock.advance(dt)

            if args.report and i % args.report == 0:
                status = coordinator.status()
                logger.info(
                    f"t={clock.now - 1_000.0:6.1f}s state={status.formation_state.value} "
                    f"stability={status.stability:.2f} "
                    f"error={status.metrics.formation_error:.1f}m "
                    f"leader={status.leader_id}"
                )

        status = coordinator.status()
        print(f"\n{'='*60}")
        print(f"Swarm {status.swarm_id}: {status.swarm_status.value}")
        print(f"Formation: {status.template.formation.value if status.template else 'none'} "
              f"({status.formation_state.value}), stability {status.stability:.2f}")
        print(f"Leader: {status.leader_id}")
        print(f"Auctions: {status.auctions.completed} completed, {status.auctions.failed} failed")
        print(f"Workload: mean utilization {status.workload.average_utilization:.2f}")
        for mission in status.missions:
            print(f"Mission {mission.mission_id}: {mission.status.value}, "
                  f"{len(mission.assignments)} agents assigned")
        print(f"{'='*60}\n")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Run the swarm coordination engine on a synthetic swarm",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-n", "--num-agents",
        type=int,
        default=8,
        help="Number of agents (default: 8)",
    )
    parser.add_argument(
        "--ticks",
        type=int,
        default=300,
        help="Fast ticks to run (default: 300)",
    )
    parser.add_argument(
        "--formation",
        choices=[f.value for f in FormationType],
        default="grid",
        help="Initial formation (default: grid)",
    )
    parser.add_argument(
        "--mission",
        default="Area surveillance",
        help="Mission name, used to infer its category",
    )
    parser.add_argument(
        "--threat",
        type=int,
        default=1,
        help="Mission threat level 0-4 (default: 1)",
    )
    parser.add_argument(
        "--wind",
        type=float,
        default=0.0,
        help="Wind speed in knots (default: 0)",
    )
    parser.add_argument(
        "--visibility",
        type=float,
        default=10.0,
        help="Visibility in km (default: 10)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=0,
        help="Random seed for initial positions (default: 0)",
    )
    parser.add_argument(
        "--report",
        type=int,
        default=50,
        help="Log status every N ticks, 0 to disable (default: 50)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()
    configure_logging("DEBUG" if args.verbose else "INFO")
    sys.exit(run(args))


if __name__ == "__main__":
    main()
