"""Tests for actor generation, the load orchestrator and the CLI entry point."""

import asyncio
import json
import random

import aiohttp
import pytest

import load_tester
from conftest import FakeTransport
from load_report import summarize
from load_tester import LoadTester, generate_actor_ids, main
from load_types import ConfigurationError, LoadTestConfig, MalformedPayloadError
from pet_scenario import PetStoreScenario

STEPS = 15


class TestActorIds:

    def test_sequential_ids(self):
        assert generate_actor_ids(3) == ["user0001", "user0002", "user0003"]

    @pytest.mark.parametrize("count,population", [(1, 1), (100, 150), (10000, 10000)])
    def test_random_ids_are_unique(self, count, population):
        ids = generate_actor_ids(count, population, random.Random(9))
        assert len(ids) == count
        assert len(set(ids)) == count
        assert all(1 <= int(i[4:]) <= population for i in ids)

    def test_population_too_small(self):
        with pytest.raises(ConfigurationError):
            generate_actor_ids(5, 4)


class TestConfig:

    @pytest.mark.parametrize("kwargs", [
        {"users": 0},
        {"concurrent": 0},
        {"rampup_seconds": -1},
        {"request_timeout": 0},
        {"checkpoint_every": 0},
        {"users": 10, "population": 5},
    ])
    def test_invalid_values_are_rejected(self, kwargs):
        with pytest.raises(ConfigurationError):
            LoadTestConfig(**kwargs)

    def test_total_scenarios(self):
        assert LoadTestConfig(users=4, concurrent=3).total_scenarios == 12


class TestImmediateMode:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("users,concurrent", [(1, 1), (3, 2), (5, 4)])
    async def test_produces_users_times_concurrent_results(self, endpoints, users, concurrent):
        config = LoadTestConfig(users=users, concurrent=concurrent, dry_run=True, discover=False)
        tester = LoadTester(config, endpoints, monitor_interval=0.01)

        results = await tester.run()

        assert len(results) == users * concurrent
        assert [r.user_id for r in results] == generate_actor_ids(users) * concurrent

    @pytest.mark.asyncio
    async def test_dry_run_three_users_all_succeed(self, endpoints):
        config = LoadTestConfig(users=3, concurrent=1, dry_run=True, discover=False)
        tester = LoadTester(config, endpoints, monitor_interval=0.01)

        results = await tester.run()
        summary = summarize(results, tester.duration)

        assert len(results) == 3
        assert all(r.success for r in results)
        assert all(o.status == 200 and o.elapsed_ms == 0 for r in results for o in r.requests)
        assert summary.success_rate == 100.0
        assert summary.total_requests == 3 * STEPS

    @pytest.mark.asyncio
    async def test_monitor_does_not_outlive_run(self, endpoints):
        config = LoadTestConfig(users=2, concurrent=2, dry_run=True, discover=False)
        tester = LoadTester(config, endpoints, monitor_interval=0.01)

        await tester.run()

        assert tester.monitor is not None
        assert asyncio.all_tasks() == {asyncio.current_task()}

    @pytest.mark.asyncio
    async def test_failing_endpoint_only_affects_its_own_breakdown(self, endpoints):
        def respond(method, url, payload):
            if url.startswith(endpoints.petlistadoptions):
                raise aiohttp.ClientConnectionError("connection refused")
            return 200, b"{}"

        config = LoadTestConfig(users=3, concurrent=2, discover=False)
        tester = LoadTester(config, endpoints, transport=FakeTransport(respond), monitor_interval=0.01)

        results = await tester.run()
        summary = summarize(results, tester.duration)

        assert len(results) == 6
        assert all(not r.success for r in results)
        listing = summary.endpoints[endpoints.petlistadoptions]
        assert (listing.successes, listing.failures) == (0, 6)
        # plain listing plus colour and type searches share one endpoint key
        search = summary.endpoints[endpoints.petsearch]
        assert (search.successes, search.failures) == (3 * 6, 0)
        adoption = summary.endpoints[endpoints.payforadoption]
        assert (adoption.successes, adoption.failures) == (6, 0)
        assert summary.failed_requests == 6

    @pytest.mark.asyncio
    async def test_configuration_fault_propagates(self, endpoints, monkeypatch):
        monkeypatch.setattr(PetStoreScenario, "_checkout_payload", lambda self, user_id: {"bad": object()})
        config = LoadTestConfig(users=2, concurrent=2, dry_run=True, discover=False)
        tester = LoadTester(config, endpoints, monitor_interval=0.01)

        with pytest.raises(MalformedPayloadError):
            await tester.run()
        assert asyncio.all_tasks() == {asyncio.current_task()}


class TestRampUpMode:

    @pytest.mark.asyncio
    async def test_starts_are_spread_over_rampup(self, endpoints):
        config = LoadTestConfig(users=5, concurrent=1, rampup_seconds=0.5, dry_run=True, discover=False)
        tester = LoadTester(config, endpoints, monitor_interval=0.01)

        results = await tester.run()

        interval = 0.5 / 5
        span = tester.start_times[-1] - tester.start_times[0]
        assert len(results) == 5
        assert len(tester.start_times) == 5
        assert 0.5 - 2 * interval <= span <= 0.5 + interval

    @pytest.mark.asyncio
    async def test_start_span_independent_of_scenario_duration(self, endpoints):
        async def slow():
            await asyncio.sleep(0.02)
            return 200, b"{}"

        config = LoadTestConfig(users=2, concurrent=2, rampup_seconds=0.2, discover=False, checkpoint_every=1)
        transport = FakeTransport(lambda m, u, p: slow())
        tester = LoadTester(config, endpoints, transport=transport, monitor_interval=0.01)

        results = await tester.run()

        span = tester.start_times[-1] - tester.start_times[0]
        assert len(results) == 4
        assert span <= 0.2 + 0.05
        # each journey alone takes about STEPS * 0.02s, longer than the ramp
        assert tester.duration >= STEPS * 0.02
        assert [r.user_id for r in results] == ["user0001", "user0002"] * 2

    @pytest.mark.asyncio
    async def test_checkpoints_at_percentage_milestones(self, endpoints, capsys):
        config = LoadTestConfig(users=8, concurrent=1, rampup_seconds=0.16, dry_run=True,
                                discover=False, checkpoint_every=10)
        tester = LoadTester(config, endpoints, monitor_interval=0.01)

        await tester.run()

        out = capsys.readouterr().out
        for line in ("2/8 started (25%)", "4/8 started (50%)", "6/8 started (75%)", "8/8 started (100%)"):
            assert f"[RAMP-UP] {line}" in out
        for index in (1, 3, 5, 7):
            assert f"[RAMP-UP] {index}/8 started" not in out
        assert "All 8 scenarios started" in out

    @pytest.mark.asyncio
    async def test_checkpoints_every_n_starts(self, endpoints, capsys):
        config = LoadTestConfig(users=3, concurrent=2, rampup_seconds=0.06, dry_run=True,
                                discover=False, checkpoint_every=1)
        tester = LoadTester(config, endpoints, monitor_interval=0.01)

        await tester.run()

        out = capsys.readouterr().out
        assert all(f"[RAMP-UP] {i}/6 started" in out for i in range(1, 7))


class TestSeeding:

    @staticmethod
    def request_shapes(results):
        return [[(o.method, o.url) for o in r.requests] for r in results]

    @pytest.mark.asyncio
    async def test_same_seed_same_requests_regardless_of_interleaving(self, endpoints):
        def jittered(jitter_seed):
            jitter = random.Random(jitter_seed)

            async def respond():
                await asyncio.sleep(jitter.random() * 0.003)
                return 200, b"{}"
            return FakeTransport(lambda m, u, p: respond())

        shapes = []
        # different response timing, so scenarios interleave differently
        for jitter_seed in (1, 2):
            config = LoadTestConfig(users=3, concurrent=2, seed=7, discover=False)
            tester = LoadTester(config, endpoints, transport=jittered(jitter_seed),
                                monitor_interval=0.01)
            shapes.append(self.request_shapes(await tester.run()))

        assert shapes[0] == shapes[1]

    @pytest.mark.asyncio
    async def test_scenarios_draw_independent_choices(self, endpoints):
        config = LoadTestConfig(users=4, concurrent=1, seed=7, dry_run=True, discover=False)
        results = await LoadTester(config, endpoints, monitor_interval=0.01).run()

        assert len({tuple(shape) for shape in self.request_shapes(results)}) > 1


class TestMain:

    def test_dry_run_exits_zero_and_writes_report(self, tmp_path):
        output = tmp_path / "report.json"
        code = main(["-u", "2", "-c", "1", "--dry-run", "--no-discovery", "--seed", "1", "-o", str(output)])

        assert code == 0
        report = json.loads(output.read_text())
        assert report["summary"]["total_scenarios"] == 2
        assert report["summary"]["total_requests"] == 2 * STEPS
        assert report["summary"]["success_rate_percent"] == 100.0

    def test_invalid_configuration_exits_two(self):
        assert main(["--users", "0", "--no-discovery"]) == 2

    def test_parse_args_defaults(self):
        args = load_tester.parse_args([])
        config = load_tester.config_from_args(args)
        assert (config.users, config.concurrent, config.region) == (10, 5, "us-east-1")
        assert config.rampup_seconds == 0
        assert config.request_timeout == 10.0
        assert config.discover is True

    @pytest.mark.asyncio
    async def test_empty_endpoints_are_a_setup_fault(self, monkeypatch):
        for var in ("PETLIST_ENDPOINT", "PETSEARCH_ENDPOINT", "PAYFORADOPTION_ENDPOINT",
                    "PETFOOD_ENDPOINT", "PETFOODCART_ENDPOINT"):
            monkeypatch.setenv(var, "")

        with pytest.raises(ConfigurationError):
            await load_tester.resolve_endpoints(LoadTestConfig(discover=False))
