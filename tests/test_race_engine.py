import random
from dataclasses import replace

import pytest

from derby_sim.engine import FieldSpec, RaceSimulator, base_time_for, race_aftermath
from derby_sim.errors import ConfigurationError
from derby_sim.models import CareerRecord, Competitor, Mood, Stats, Strategy
from derby_sim.modifiers import ModifierTables
from derby_sim.schedule import ScheduledEvent


class MidpointRandom(random.Random):
    def uniform(self, a: float, b: float) -> float:
        return (a + b) / 2.0


def _event(**overrides) -> ScheduledEvent:
    kwargs = {"turn": 4, "event_id": "test-mile", "name": "Test Mile", "category": "MILE", "distance": 1600}
    kwargs.update(overrides)
    return ScheduledEvent(**kwargs)


def _player(**overrides) -> Competitor:
    kwargs = {"name": "Home Hope", "is_player": True, "stats": Stats(speed=55, stamina=50, power=45)}
    kwargs.update(overrides)
    return Competitor(**kwargs)


def _run(seed: int):
    sim = RaceSimulator()
    return sim.simulate_event(_player(), FieldSpec(event=_event()), Strategy.MID, random.Random(seed))


def test_same_seed_gives_same_result() -> None:
    first = _run(42)
    second = _run(42)
    assert [(p.name, p.rank, p.time) for p in first.placings] == [
        (p.name, p.rank, p.time) for p in second.placings
    ]


def test_field_of_eight_with_synthetic_rivals() -> None:
    outcome = _run(9)
    assert outcome.field_size == 8
    assert sum(1 for p in outcome.placings if p.is_player) == 1
    assert len({p.name for p in outcome.placings}) == 8
    assert outcome.phase_names == ("break", "early", "middle", "stretch")


def test_ranks_are_a_permutation() -> None:
    outcome = _run(5)
    assert sorted(p.rank for p in outcome.placings) == list(range(1, 9))
    assert [p.rank for p in outcome.placings] == list(range(1, 9))


def test_times_never_decrease_with_rank() -> None:
    outcome = _run(17)
    times = [p.time for p in outcome.placings]
    assert times == sorted(times)
    assert outcome.winner.margin_lengths == 0.0
    assert all(0 < t <= base_time_for(1600) for t in times)


def test_field_needs_two_runners() -> None:
    sim = RaceSimulator()
    with pytest.raises(ConfigurationError):
        sim.simulate_event(_player(), FieldSpec(event=_event(), size=1), Strategy.MID, random.Random(1))


def test_provided_rivals_fill_field_first() -> None:
    rivals = [Competitor(name=f"Rival {idx}", stats=Stats(40, 40, 40)) for idx in range(3)]
    sim = RaceSimulator()
    outcome = sim.simulate_event(_player(), FieldSpec(event=_event(), rivals=rivals, size=4), "front", random.Random(3))
    assert {p.name for p in outcome.placings} == {"Home Hope", "Rival 0", "Rival 1", "Rival 2"}
    assert outcome.player_placing is not None
    assert outcome.player_placing.strategy == "FRONT"


def test_ties_keep_field_order() -> None:
    rival = Competitor(name="Twin", stats=Stats(50, 50, 50))
    player = _player(stats=Stats(50, 50, 50))
    sim = RaceSimulator()
    outcome = sim.simulate_event(player, FieldSpec(event=_event(), rivals=[rival], size=2), Strategy.MID, MidpointRandom())
    assert outcome.placings[0].performance_score == outcome.placings[1].performance_score
    assert [p.name for p in outcome.placings] == ["Home Hope", "Twin"]


def test_stronger_horse_wins_without_noise() -> None:
    rival = Competitor(name="Plodder", stats=Stats(30, 30, 30))
    sim = RaceSimulator()
    outcome = sim.simulate_event(_player(), FieldSpec(event=_event(), rivals=[rival], size=2), Strategy.MID, MidpointRandom())
    assert outcome.winner.name == "Home Hope"


def test_simulation_does_not_mutate_runners() -> None:
    player = _player()
    before = (player.stats.as_dict(), player.condition.energy, player.bond)
    RaceSimulator().simulate_event(player, FieldSpec(event=_event()), Strategy.LATE, random.Random(8))
    assert (player.stats.as_dict(), player.condition.energy, player.bond) == before


def test_win_aftermath_rewards_bond_and_mood() -> None:
    player = _player(bond=10)
    career = CareerRecord(turn=4)
    outcome = _run(42)
    placing = replace(outcome.winner, is_player=True)

    result = race_aftermath(player, career, placing)

    assert result.won
    assert player.bond == 15
    assert player.condition.mood == Mood.GREAT
    assert career.races_run == 1
    assert career.races_won == 1


def test_unplaced_aftermath_costs_energy() -> None:
    player = _player()
    career = CareerRecord(turn=4)
    outcome = _run(42)
    last = outcome.placings[-1]

    result = race_aftermath(player, career, last)

    assert result.rank == 8
    assert result.energy_delta == -5
    assert player.condition.energy == 95
    assert career.races_won == 0


def test_distance_fit_rewards_matching_specialization() -> None:
    tables = ModifierTables.from_config()
    assert tables.distance_fit("Sprinter", 1200) == pytest.approx(1.15)
    assert tables.distance_fit("Stayer", 1200) == pytest.approx(0.88)
    assert tables.distance_fit("Sprinter", 3400) == pytest.approx(0.8)
    assert tables.distance_fit(None, 1200) == 1.0
    assert tables.growth_multiplier("Thoroughbred", "B", "stamina", "Stayer") == pytest.approx(1.3)
    with pytest.raises(ConfigurationError):
        tables.distance_fit("Hurdler", 1200)
    with pytest.raises(ConfigurationError):
        Competitor(name="Odd One", specialization="Hurdler")


@pytest.mark.parametrize(
    ("category", "distance", "winner"),
    [("SPRINT", 1200, "Home Hope"), ("LONG", 2400, "Twin")],
)
def test_specialist_wins_at_its_distance(category: str, distance: int, winner: str) -> None:
    player = _player(stats=Stats(50, 50, 50), specialization="Sprinter")
    rival = Competitor(name="Twin", stats=Stats(50, 50, 50), specialization="Stayer")
    event = _event(category=category, distance=distance)
    sim = RaceSimulator()
    outcome = sim.simulate_event(player, FieldSpec(event=event, rivals=[rival], size=2), Strategy.MID, MidpointRandom())
    assert outcome.winner.name == winner


def test_bad_specialization_table_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        ModifierTables.from_config(specializations={"Backwards": {"distance": (2000, 1000)}})
