"""
Tests for the DQN agent.

These tests verify:
- The linear epsilon schedule and epsilon-greedy action selection
- play_step() bookkeeping across episode boundaries
- TD targets, the training step and target network syncing
- Save/load functionality
"""

import pytest
import sys
import os

import torch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dqn_trader.ai.agent import Agent, PlayStepResult, SaveMetadata
from dqn_trader.ai.replay_memory import Transition
from dqn_trader.errors import EmptyBufferError
from dqn_trader.market import TradingGame, MarketState
from tests.helpers import ScriptedMarket, FailingMarket, ConstantNetwork, constant_factory


@pytest.fixture
def config(small_config):
    small_config.EPSILON_INIT = 1.0
    small_config.EPSILON_FINAL = 0.1
    small_config.EPSILON_DECAY_FRAMES = 10
    return small_config


@pytest.fixture
def agent(config):
    return Agent(TradingGame(config), config)


def state(tag: float = 0.0) -> MarketState:
    return MarketState(holdings=0.0, cash=1.0, price=tag, next_price=tag + 1.0)


class TestAgentInit:
    """Tests for agent initialization."""

    def test_init(self, agent, config):
        assert agent.state_size == 4
        assert agent.action_size == 3
        assert agent.frame_count == 0
        assert agent.epsilon == config.EPSILON_INIT
        assert len(agent.memory) == 0
        assert agent.memory.capacity == config.REPLAY_BUFFER_SIZE

    def test_target_starts_equal_to_online(self, agent):
        online = agent.online_net.get_parameters()
        target = agent.target_net.get_parameters()
        for name in online:
            assert torch.equal(online[name], target[name])

    def test_networks_are_distinct(self, agent):
        assert agent.online_net is not agent.target_net

    def test_sgd_optimizer(self, config):
        config.OPTIMIZER = 'sgd'
        agent = Agent(TradingGame(config), config)
        assert isinstance(agent.optimizer, torch.optim.SGD)

    def test_network_factory(self, config):
        agent = Agent(ScriptedMarket(), config, network_factory=constant_factory([0.0, 1.0, 0.0]))
        assert isinstance(agent.online_net, ConstantNetwork)
        assert isinstance(agent.target_net, ConstantNetwork)


class TestEpsilonSchedule:
    """Linear schedule from EPSILON_INIT to EPSILON_FINAL over EPSILON_DECAY_FRAMES."""

    def test_endpoints(self, agent):
        assert agent.epsilon_for_frame(0) == 1.0
        assert agent.epsilon_for_frame(5) == pytest.approx(0.55)
        assert agent.epsilon_for_frame(10) == 0.1

    def test_pinned_after_horizon(self, agent):
        for frame in (10, 11, 50, 10_000):
            assert agent.epsilon_for_frame(frame) == 0.1

    def test_play_step_follows_schedule(self, agent):
        """Epsilon strictly decreases until the horizon, then stays at the floor."""
        epsilons = []
        for _ in range(15):
            agent.play_step()
            epsilons.append(agent.epsilon)

        for i in range(10):
            assert epsilons[i + 1] < epsilons[i]
        assert all(e == 0.1 for e in epsilons[10:])
        assert agent.frame_count == 15

    def test_frame_count_survives_episodes(self, config):
        agent = Agent(ScriptedMarket(episode_length=2), config)
        for _ in range(7):
            agent.play_step()
        assert agent.frame_count == 7

    def test_agents_count_frames_independently(self, config):
        first = Agent(ScriptedMarket(), config)
        second = Agent(ScriptedMarket(), config)
        for _ in range(4):
            first.play_step()
        assert first.frame_count == 4
        assert second.frame_count == 0
        assert second.epsilon == config.EPSILON_INIT


class TestActionSelection:
    """Epsilon-greedy policy."""

    def test_greedy_picks_highest_value(self, config):
        agent = Agent(ScriptedMarket(), config, network_factory=constant_factory([0.0, 2.0, 1.0]))
        assert agent.greedy_action(state()) == 1

    def test_greedy_tie_picks_first(self, config):
        agent = Agent(ScriptedMarket(), config, network_factory=constant_factory([1.0, 1.0, 0.0]))
        assert agent.greedy_action(state()) == 0

    def test_no_exploration_when_epsilon_zero(self, config):
        config.EPSILON_INIT = 0.0
        config.EPSILON_FINAL = 0.0
        market = ScriptedMarket(episode_length=5)
        agent = Agent(market, config, network_factory=constant_factory([0.0, 0.0, 3.0]))
        for _ in range(20):
            assert agent.play_step().action == 2

    def test_full_exploration_covers_all_actions(self, config):
        config.EPSILON_FINAL = 1.0
        market = ScriptedMarket(episode_length=5)
        agent = Agent(market, config, network_factory=constant_factory([0.0, 0.0, 3.0]))
        actions = {agent.play_step().action for _ in range(200)}
        assert actions == {0, 1, 2}

    def test_select_action_not_training_is_greedy(self, config):
        agent = Agent(ScriptedMarket(), config, network_factory=constant_factory([0.0, 0.0, 3.0]))
        agent.epsilon = 1.0
        assert all(agent.select_action(state(), training=False) == 2 for _ in range(20))

    def test_get_q_values(self, config):
        agent = Agent(ScriptedMarket(), config, network_factory=constant_factory([0.5, 1.5, 2.5]))
        assert agent.get_q_values(state()).tolist() == [0.5, 1.5, 2.5]


class TestPlayStep:
    """play_step() bookkeeping."""

    def test_stores_one_transition_per_step(self, config):
        agent = Agent(ScriptedMarket(episode_length=3), config)
        for i in range(5):
            agent.play_step()
            assert len(agent.memory) == i + 1

    def test_transition_contents(self, config):
        market = ScriptedMarket(episode_length=2, reward=1.5)
        agent = Agent(market, config)

        first = agent.play_step()
        second = agent.play_step()
        stored = {t.state.price: t for t in agent.memory.sample(1000)}

        assert stored[0.0].action == first.action
        assert stored[0.0].reward == 1.5
        assert stored[0.0].done is False
        assert stored[0.0].next_state.price == 1.0
        assert stored[1.0].done is True
        assert stored[1.0].next_state is None
        assert second.done is True

    def test_result_type(self, agent):
        result = agent.play_step()
        assert isinstance(result, PlayStepResult)
        assert 0 <= result.action < 3

    def test_cumulative_reward_and_reset(self, config):
        """The terminal step reports the episode total, the next step starts over."""
        market = ScriptedMarket(episode_length=3, reward=1.0)
        agent = Agent(market, config)
        resets_before = market.resets

        results = [agent.play_step() for _ in range(3)]
        assert [r.cumulative_reward for r in results] == [1.0, 2.0, 3.0]
        assert [r.done for r in results] == [False, False, True]
        assert market.resets == resets_before + 1

        after = agent.play_step()
        assert after.cumulative_reward == 1.0
        assert after.done is False

    def test_trade_counter(self, config):
        config.EPSILON_INIT = 0.0
        config.EPSILON_FINAL = 0.0
        market = ScriptedMarket(episode_length=4)
        agent = Agent(market, config, network_factory=constant_factory([0.0, 5.0, 0.0]))

        results = [agent.play_step() for _ in range(4)]
        assert [r.trades_made for r in results] == [1, 2, 3, 4]
        assert agent.play_step().trades_made == 1

    def test_market_error_propagates(self, config):
        agent = Agent(FailingMarket(), config)
        with pytest.raises(RuntimeError):
            agent.play_step()
        assert len(agent.memory) == 0


class TestTraining:
    """TD targets and the training step."""

    def test_terminal_target_is_reward(self, agent):
        """Terminal rows never bootstrap, however large the target values are."""
        agent.target_net = ConstantNetwork([1e6, 1e6, 1e6])
        targets = agent.compute_td_targets(
            rewards=torch.tensor([5.0]),
            dones=torch.tensor([1.0]),
            next_states=torch.zeros(1, 4),
            gamma=0.9
        )
        assert targets.tolist() == [5.0]

    def test_non_terminal_target_bootstraps(self, agent):
        agent.target_net = ConstantNetwork([1.0, 4.0, 2.0])
        targets = agent.compute_td_targets(
            rewards=torch.tensor([1.0, 1.0]),
            dones=torch.tensor([0.0, 1.0]),
            next_states=torch.zeros(2, 4),
            gamma=0.5
        )
        assert targets.tolist() == pytest.approx([3.0, 1.0])

    def test_terminal_target_ignores_non_finite_values(self, agent):
        agent.target_net = ConstantNetwork([float('inf'), 0.0, 0.0])
        targets = agent.compute_td_targets(
            torch.tensor([5.0, 1.0]), torch.tensor([1.0, 0.0]), torch.zeros(2, 4), gamma=0.9
        )
        assert targets[0].item() == 5.0
        assert targets[1].item() == float('inf')

    def test_gamma_zero_ignores_future(self, agent):
        agent.target_net = ConstantNetwork([100.0, 100.0, 100.0])
        targets = agent.compute_td_targets(
            torch.tensor([2.0]), torch.tensor([0.0]), torch.zeros(1, 4), gamma=0.0
        )
        assert targets.tolist() == [2.0]

    def test_targets_carry_no_gradient(self, agent):
        targets = agent.compute_td_targets(
            torch.tensor([1.0]), torch.tensor([0.0]), torch.zeros(1, 4), gamma=0.9
        )
        assert targets.requires_grad is False

    def test_train_on_empty_memory_raises(self, agent):
        with pytest.raises(EmptyBufferError):
            agent.train_on_replay_batch(8, 0.99)

    def test_loss_uses_taken_action(self, agent):
        """
        With one terminal transition stored, the loss is (Q(s, a) - r)^2
        for the action actually taken, whatever the target network says.
        """
        s = state(1.0)
        agent.memory.append(Transition(s, 1, 5.0, True, None))
        agent.target_net = ConstantNetwork([1e6, 1e6, 1e6])

        q = agent.online_net.predict(agent.encoder.encode(s))[0, 1].item()
        loss = agent.train_on_replay_batch(8, 0.9)

        assert isinstance(loss, float)
        assert loss == pytest.approx((q - 5.0) ** 2, rel=1e-4)

    def test_training_updates_online_only(self, agent):
        for _ in range(20):
            agent.play_step()
        online_before = agent.online_net.get_parameters()
        target_before = agent.target_net.get_parameters()

        agent.train_on_replay_batch(8, 0.99)

        online_after = agent.online_net.get_parameters()
        target_after = agent.target_net.get_parameters()
        assert any(not torch.equal(online_before[k], online_after[k]) for k in online_before)
        assert all(torch.equal(target_before[k], target_after[k]) for k in target_before)
        assert all(p.grad is None for p in agent.target_net.parameters())

    def test_explicit_optimizer(self, agent):
        for _ in range(10):
            agent.play_step()
        optimizer = torch.optim.SGD(agent.online_net.parameters(), lr=0.01)
        loss = agent.train_on_replay_batch(4, 0.99, optimizer)
        assert loss >= 0.0

    def test_losses_recorded(self, agent):
        for _ in range(10):
            agent.play_step()
        assert agent.get_average_loss() == 0.0
        losses = [agent.train_on_replay_batch(4, 0.99) for _ in range(3)]
        assert agent.get_average_loss(3) == pytest.approx(sum(losses) / 3)

    def test_gradient_clipping(self, agent, config):
        config.GRAD_CLIP = 0.5
        for _ in range(10):
            agent.play_step()
        assert agent.train_on_replay_batch(8, 0.99) >= 0.0


class TestTargetSync:
    """synchronize_target_network()."""

    def _train_a_bit(self, agent):
        for _ in range(20):
            agent.play_step()
        for _ in range(5):
            agent.train_on_replay_batch(8, 0.99)

    def test_sync_copies_weights(self, agent):
        self._train_a_bit(agent)
        x = torch.randn(6, 4)
        assert not torch.equal(agent.online_net.predict(x), agent.target_net.predict(x))

        agent.synchronize_target_network()

        assert torch.equal(agent.online_net.predict(x), agent.target_net.predict(x))

    def test_sync_is_a_snapshot(self, agent):
        """Later training does not leak into the target network."""
        agent.synchronize_target_network()
        snapshot = agent.target_net.get_parameters()

        self._train_a_bit(agent)

        after = agent.target_net.get_parameters()
        assert all(torch.equal(snapshot[k], after[k]) for k in snapshot)


class TestAgentSaveLoad:
    """Tests for saving and loading agents."""

    def test_save_and_load(self, agent, config, tmp_path):
        for _ in range(20):
            agent.play_step()
        agent.train_on_replay_batch(8, 0.99)
        path = str(tmp_path / 'agent.pth')

        metadata = agent.save(path, save_reason='manual', episode=3, best_avg_reward=1.25)
        assert os.path.exists(path)
        assert isinstance(metadata, SaveMetadata)
        assert metadata.frame_count == 20

        fresh = Agent(TradingGame(config), config)
        loaded = fresh.load(path)

        assert loaded is not None
        assert loaded.episode == 3
        assert loaded.best_avg_reward == 1.25
        assert fresh.frame_count == 20
        assert fresh.epsilon == fresh.epsilon_for_frame(20)

        x = torch.randn(5, 4)
        assert torch.equal(agent.online_net.predict(x), fresh.online_net.predict(x))
        assert torch.equal(agent.target_net.predict(x), fresh.target_net.predict(x))

    def test_save_creates_directory(self, agent, tmp_path):
        path = str(tmp_path / 'nested' / 'dir' / 'agent.pth')
        assert agent.save(path) is not None
        assert os.path.exists(path)

    def test_load_missing_file(self, agent, tmp_path):
        assert agent.load(str(tmp_path / 'missing.pth')) is None

    def test_load_corrupt_file(self, agent, tmp_path):
        path = tmp_path / 'corrupt.pth'
        path.write_bytes(b'not a checkpoint')
        assert agent.load(str(path)) is None

    def test_load_different_hidden_layers(self, agent, config, tmp_path):
        """A checkpoint with another layer layout is refused and changes nothing."""
        path = str(tmp_path / 'agent.pth')
        agent.save(path)

        config.HIDDEN_LAYERS = [8]
        other = Agent(TradingGame(config), config)
        before = other.online_net.get_parameters()

        assert other.load(path) is None

        after = other.online_net.get_parameters()
        assert all(torch.equal(before[k], after[k]) for k in before)
        assert other.frame_count == 0

    def test_load_incompatible(self, agent, config, tmp_path):
        path = str(tmp_path / 'agent.pth')
        agent.save(path)
        other = Agent(ScriptedMarket(state_size=5), config)
        assert other.load(path) is None

    def test_metadata_round_trip(self, agent, tmp_path):
        metadata = agent.save(str(tmp_path / 'agent.pth'), save_reason='best')
        assert SaveMetadata.from_dict(metadata.to_dict()) == metadata
        assert metadata.save_reason == 'best'
