from __future__ import annotations

import dataclasses
import gc

import numpy as np
import pytest
from pygame.math import Vector2, Vector3
from pytest import approx

from slimemold.sim.core.agent import Agent
from slimemold.sim.core.config import SimulationConfig, SpawnMode, SpeciesConfig
from slimemold.sim.core.errors import ConfigError, InvariantViolation, LifecycleError
from slimemold.sim.core.simulation import Simulation, SimulationState, initialize


def _still_config(**overrides) -> SimulationConfig:
    values = dict(
        width=10,
        height=10,
        num_agents=1,
        trail_weight=5.0,
        decay_rate=0.0,
        diffuse_rate=0.0,
        time_step=1.0,
        species=(SpeciesConfig(move_speed=1.0, turn_speed=1.0, sensor_offset_dst=0.0),),
    )
    values.update(overrides)
    return SimulationConfig(**values)


def run_ticks(config: SimulationConfig, ticks: int, seed: int = 1234):
    with initialize(config, seed=seed) as sim:
        for _ in range(ticks):
            sim.advance()
        fields = [sim.get_trail_field(c) for c in range(sim.species.channel_count)]
        agents = sim.get_agents()
    return fields, agents


def test_single_agent_scenario_moves_and_deposits():
    sim = initialize(_still_config(), agents=[Agent(id=0, species_index=0, position=Vector2(5, 5))])

    sim.advance(1.0)

    agent = sim.get_agents()[0]
    assert tuple(agent.position) == (6.0, 5.0)
    assert agent.heading == 0.0
    assert agent.species_mask == (1.0,)
    expected = np.zeros((10, 10))
    expected[6, 5] = 5.0
    assert np.array_equal(sim.get_trail_field(0), expected)


@pytest.mark.parametrize("hot_cell,expected_heading", [((10, 15), 1.5), ((10, 5), -1.5)])
def test_agent_turns_toward_strongest_probe(hot_cell, expected_heading):
    config = _still_config(
        width=21,
        height=21,
        species=(
            SpeciesConfig(
                move_speed=0.0,
                turn_speed=1.5,
                sensor_angle_degrees=90.0,
                sensor_offset_dst=5.0,
                sensor_size=1,
            ),
        ),
    )
    sim = initialize(config, agents=[Agent(id=0, species_index=0, position=Vector2(10, 10))])
    trail = sim._field.current
    trail[0, 15, 10] = 1.0
    trail[0, 10, 15] = 1.0
    trail[0, 10, 5] = 1.0
    trail[(0, *hot_cell)] = 10.0

    sim.advance(1.0)

    assert sim.get_agents()[0].heading == expected_heading


def test_sensor_weights_bias_the_comparison():
    config = _still_config(
        width=21,
        height=21,
        species=(SpeciesConfig(move_speed=0.0, turn_speed=1.0, sensor_angle_degrees=90.0, sensor_offset_dst=5.0),),
    )
    agent = Agent(id=0, species_index=0, position=Vector2(10, 10), sensor_weights=(1.0, 0.05, 1.0))
    sim = initialize(config, agents=[agent])
    sim._field.current[0, 15, 10] = 1.0
    sim._field.current[0, 10, 15] = 10.0

    sim.advance(1.0)

    # weighted left reading drops to 0.5, below forward
    assert sim.get_agents()[0].heading == 0.0


def test_agent_wraps_across_the_boundary():
    config = _still_config(species=(SpeciesConfig(move_speed=0.5, sensor_offset_dst=0.0),))
    sim = initialize(config, agents=[Agent(id=0, species_index=0, position=Vector2(9.9, 5.0))])

    sim.advance(1.0)

    agent = sim.get_agents()[0]
    assert agent.position.x == approx(0.4)
    assert agent.position.y == approx(5.0)
    assert sim.get_trail_field(0)[0, 5] == approx(5.0)


def test_starved_agent_stops_depositing():
    config = _still_config(
        trail_weight=1.0,
        starvation_rate=0.2,
        species=(SpeciesConfig(move_speed=0.0, sensor_offset_dst=0.0),),
    )
    sim = initialize(config, agents=[Agent(id=0, species_index=0, position=Vector2(5, 5))])

    for _ in range(4):
        sim.advance(1.0)
    assert sim.get_agents()[0].health == approx(0.2)

    sim.advance(1.0)
    agent = sim.get_agents()[0]
    assert agent.health == 0.0
    assert agent.starved
    total = sim.get_trail_field(0).sum()

    for _ in range(3):
        metrics = sim.advance(1.0)
        assert sim.get_trail_field(0).sum() == total
    assert metrics.starved == 1
    assert tuple(sim.get_agents()[0].position) == (5.0, 5.0)


def test_species_deposit_only_into_their_own_channel():
    species = tuple(SpeciesConfig(move_speed=1.0, sensor_offset_dst=0.0) for _ in range(3))
    config = _still_config(trail_weight=2.0, species=species)
    agents = [
        Agent(id=index, species_index=index, position=Vector2(2 + 3 * index, 2 + 3 * index))
        for index in range(3)
    ]
    sim = initialize(config, agents=agents)

    sim.advance(1.0)

    for index in range(3):
        trail = sim.get_trail_field(index)
        assert trail[3 + 3 * index, 2 + 3 * index] == approx(2.0)
        assert trail.sum() == approx(2.0)
    masks = [agent.species_mask for agent in sim.get_agents()]
    assert masks == [(1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0)]


def test_deterministic_runs():
    config = SimulationConfig(
        width=48,
        height=32,
        num_agents=300,
        trail_weight=3.0,
        spawn_mode=SpawnMode.RANDOM,
        species=(
            SpeciesConfig(move_speed=20.0, turn_speed=4.0, sensor_offset_dst=4.0),
            SpeciesConfig(move_speed=15.0, turn_speed=3.0, sensor_offset_dst=6.0, sensor_size=3),
        ),
    )
    fields_a, agents_a = run_ticks(config, 25)
    # rebuild the config to make sure nothing is shared between runs
    fields_b, agents_b = run_ticks(dataclasses.replace(config), 25)

    for a, b in zip(fields_a, fields_b):
        assert np.array_equal(a, b)
    assert [tuple(a.position) for a in agents_a] == [tuple(b.position) for b in agents_b]
    assert [a.heading for a in agents_a] == [b.heading for b in agents_b]

    fields_c, _ = run_ticks(config, 25, seed=99)
    assert not np.array_equal(fields_a[0], fields_c[0])


def test_worker_threads_do_not_change_results():
    base = SimulationConfig(
        width=40,
        height=40,
        num_agents=400,
        lanes=4,
        workers=0,
        species=(SpeciesConfig(move_speed=10.0, sensor_offset_dst=3.0),),
    )
    inline_fields, inline_agents = run_ticks(base, 15, seed=5)
    threaded_fields, threaded_agents = run_ticks(dataclasses.replace(base, workers=4), 15, seed=5)

    assert np.array_equal(inline_fields[0], threaded_fields[0])
    assert [tuple(a.position) for a in inline_agents] == [tuple(a.position) for a in threaded_agents]


def _threaded_config() -> SimulationConfig:
    return SimulationConfig(width=16, height=16, num_agents=20, lanes=2, workers=2)


def test_abandoned_simulation_shuts_down_its_lane_threads():
    sim = initialize(_threaded_config())
    sim.advance()
    executor = sim._executor
    assert executor is not None

    del sim
    gc.collect()

    with pytest.raises(RuntimeError):
        executor.submit(int)


def test_dispose_shuts_down_lane_threads_once():
    sim = initialize(_threaded_config())
    executor = sim._executor
    finalizer = sim._executor_finalizer

    sim.dispose()

    assert not finalizer.alive
    assert sim._executor is None
    with pytest.raises(RuntimeError):
        executor.submit(int)


def test_lifecycle_state_machine():
    sim = Simulation(_still_config())
    assert sim.state == SimulationState.UNINITIALIZED
    with pytest.raises(LifecycleError):
        sim.advance()

    sim.initialize(seed=3)
    assert sim.state == SimulationState.READY
    with pytest.raises(LifecycleError):
        sim.initialize()

    sim.advance()
    assert sim.tick == 1
    sim.dispose()
    assert sim.state == SimulationState.DISPOSED
    with pytest.raises(LifecycleError):
        sim.advance()
    with pytest.raises(LifecycleError):
        sim.get_trail_field(0)
    sim.dispose()


def test_invalid_config_fails_at_initialize():
    sim = Simulation(_still_config(width=0))

    with pytest.raises(ConfigError):
        sim.initialize()
    assert sim.state == SimulationState.UNINITIALIZED


def test_species_index_out_of_range_fails_at_creation():
    agents = [Agent(id=0, species_index=2, position=Vector2(1, 1))]

    with pytest.raises(InvariantViolation):
        initialize(_still_config(), agents=agents)


def test_negative_dt_is_rejected():
    sim = initialize(_still_config())

    with pytest.raises(ValueError):
        sim.advance(-1.0)


def test_frame_runs_steps_per_frame_ticks():
    sim = initialize(_still_config(num_agents=20, steps_per_frame=3, time_step=0.1))

    frame = sim.advance_frame()

    assert frame.steps == 3
    assert frame.frame == 1
    assert frame.last_tick.tick == 3
    assert sim.tick == 3


def test_presenter_reads_are_read_only_snapshots():
    sim = initialize(_still_config(num_agents=5))
    sim.advance()

    trail = sim.get_trail_field(0)
    with pytest.raises(ValueError):
        trail[0, 0] = 1.0
    agents = sim.get_agents()
    agents[0].position.x = 123.0
    assert sim.get_agents()[0].position.x != 123.0

    snapshot = sim.snapshot()
    assert snapshot.tick == 1
    assert snapshot.world.extents == (10, 10)
    assert snapshot.metadata.channels == 1
    assert len(snapshot.agents) == 5
    for key in ["id", "species", "x", "y", "heading", "health", "is_starved"]:
        assert key in snapshot.agents[0]
    assert snapshot.fields.trail[0].shape == (10, 10)


def test_three_dimensional_run_keeps_agents_in_volume():
    config = SimulationConfig(
        dimensions=3,
        width=16,
        height=12,
        depth=8,
        num_agents=120,
        spawn_mode=SpawnMode.RANDOM,
        time_step=0.5,
        filter_mode="linear",
        species=(
            SpeciesConfig(move_speed=3.0, turn_speed=2.0, sensor_offset_dst=2.0),
            SpeciesConfig(move_speed=2.0, turn_speed=1.0, sensor_offset_dst=3.0, sensor_size=2),
        ),
    )
    with initialize(config, seed=21) as sim:
        for _ in range(10):
            metrics = sim.advance()
        agents = sim.get_agents()
        trail = sim.get_trail_field(1)
        snapshot = sim.snapshot()

    assert metrics.agents == 120
    assert trail.shape == (16, 12, 8)
    assert np.all(trail >= 0.0)
    for agent in agents:
        assert 0.0 <= agent.position.x < 16
        assert 0.0 <= agent.position.y < 12
        assert 0.0 <= agent.position.z < 8
        assert -np.pi / 2 <= agent.pitch <= np.pi / 2
    assert "z" in snapshot.agents[0] and "pitch" in snapshot.agents[0]


def test_three_dimensional_agent_pitches_toward_upper_probe():
    config = _still_config(
        dimensions=3,
        width=16,
        height=16,
        depth=16,
        species=(
            SpeciesConfig(move_speed=0.0, turn_speed=0.5, sensor_angle_degrees=90.0, sensor_offset_dst=4.0),
        ),
    )
    sim = initialize(config, agents=[Agent(id=0, species_index=0, position=Vector3(8, 8, 8))])
    sim._field.current[0, 8, 8, 12] = 10.0

    sim.advance(1.0)

    agent = sim.get_agents()[0]
    assert agent.heading == 0.0
    assert agent.pitch == 0.5
