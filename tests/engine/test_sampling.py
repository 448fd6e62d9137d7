import pytest


torch = pytest.importorskip("torch", reason="torch not installed")


from query_assistant.engine.errors import SamplingError
from query_assistant.engine.sampling import SamplingPolicy, apply_repetition_penalty


def test_penalty_moves_both_signs_toward_less_likely():
    logits = torch.tensor([2.0, -2.0, 0.0, 1.0])
    out = apply_repetition_penalty(logits, 2.0, [0, 1, 2])

    assert out.tolist() == [1.0, -4.0, 0.0, 1.0]
    # Input is left untouched.
    assert logits.tolist() == [2.0, -2.0, 0.0, 1.0]


def test_penalty_applies_once_per_distinct_id():
    logits = torch.tensor([4.0, 1.0])
    out = apply_repetition_penalty(logits, 2.0, [0, 0, 0])
    assert out.tolist() == [2.0, 1.0]


def test_penalty_ignores_out_of_vocab_ids():
    logits = torch.tensor([4.0, 1.0])
    out = apply_repetition_penalty(logits, 2.0, [7, -1])
    assert out.tolist() == [4.0, 1.0]


def test_penalty_window_is_last_n_tokens():
    policy = SamplingPolicy(repeat_penalty=2.0, repeat_last_n=2)
    logits = torch.tensor([4.0, 4.0, 4.0])
    out = policy.penalize(logits, [0, 1, 2])
    assert out.tolist() == [4.0, 2.0, 2.0]


def test_neutral_penalty_is_identity():
    policy = SamplingPolicy(repeat_penalty=1.0)
    logits = torch.tensor([1.0, 3.0])
    assert policy.penalize(logits, [0, 1]) is logits


def test_greedy_returns_argmax():
    policy = SamplingPolicy(temperature=0.0, repeat_penalty=1.0)
    assert policy.sample(torch.tensor([0.1, 5.0, 0.3]), []) == 1


def test_greedy_argmax_sees_penalized_logits():
    # 5.0 / 1.1 < 4.9, so the repeated id loses to its neighbour.
    policy = SamplingPolicy(temperature=0.0, repeat_penalty=1.1)
    assert policy.sample(torch.tensor([4.9, 5.0]), [1]) == 0


def test_seeded_sampling_is_reproducible_after_reset():
    policy = SamplingPolicy(seed=1234, temperature=1.0, repeat_penalty=1.0)
    logits = torch.zeros(50)

    first = [policy.sample(logits, []) for _ in range(10)]
    policy.reset()
    second = [policy.sample(logits, []) for _ in range(10)]
    other = SamplingPolicy(seed=1234, temperature=1.0, repeat_penalty=1.0)
    third = [other.sample(logits, []) for _ in range(10)]

    assert first == second == third


def test_top_p_keeps_only_the_head():
    policy = SamplingPolicy(temperature=1.0, top_p=0.5, repeat_penalty=1.0)
    logits = torch.tensor([10.0, 0.0, 0.0, 0.0])
    assert {policy.sample(logits, []) for _ in range(20)} == {0}


@pytest.mark.parametrize(
    "logits",
    [
        torch.tensor([]),
        torch.tensor([[1.0, 2.0]]),
        torch.tensor([1.0, float("nan")]),
    ],
)
def test_invalid_logits_raise_sampling_error(logits):
    with pytest.raises(SamplingError):
        SamplingPolicy().sample(logits, [])


def test_invalid_parameters_are_rejected():
    with pytest.raises(ValueError):
        SamplingPolicy(temperature=-1.0)
    with pytest.raises(ValueError):
        SamplingPolicy(top_p=0.0)
    with pytest.raises(ValueError):
        SamplingPolicy(repeat_penalty=0.0)
    with pytest.raises(ValueError):
        SamplingPolicy(repeat_last_n=-1)
