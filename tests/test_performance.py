from datetime import datetime, timedelta

from leadengine.domain.performance import CompletedAssignment, summarize_performance

T0 = datetime(2026, 1, 1, 9, 0, 0)


def test_success_rate_and_close_time():
    completed = [
        CompletedAssignment(assigned_at=T0, closed_at=T0 + timedelta(hours=36)),  # 2 days
        CompletedAssignment(assigned_at=T0 + timedelta(days=1), closed_at=T0 + timedelta(days=4)),  # 3 days
    ]
    perf = summarize_performance(total_assignments=4, active_count=1, completed=completed)

    assert perf.current_load == 1
    assert perf.completed_deals == 2
    assert perf.success_rate == 50.0
    assert perf.average_close_time_days == 2.5


def test_no_assignments():
    perf = summarize_performance(total_assignments=0, active_count=0, completed=[])
    assert perf.success_rate == 0.0
    assert perf.average_close_time_days is None


def test_only_recent_completions_are_sampled():
    completed = [
        CompletedAssignment(assigned_at=T0 + timedelta(days=i), closed_at=T0 + timedelta(days=i + 1))
        for i in range(60)
    ]
    perf = summarize_performance(total_assignments=60, active_count=0, completed=completed)
    assert perf.completed_deals == 50
    assert round(perf.success_rate, 2) == 83.33
    assert perf.average_close_time_days == 1.0
