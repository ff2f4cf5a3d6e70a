"""Wait for Elastic Beanstalk environments to converge.

Both waits share one primitive, ``poll_until``: poll the environment on a
fixed interval, tail new environment events between polls, and stop when a
success predicate or a failure predicate holds or the deadline passes.

Policy:
    * Deployment wait succeeds once the status leaves the in-progress set.
    * Health wait succeeds on Green or Yellow with no operation in flight.
    * Both fail fast only when the environment is terminating/terminated.
      A Red reading alone never fails fast; if it persists, the wait runs
      out its deadline and raises DeploymentTimeoutError naming Red.
"""
import time
import logging
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from eb_deploy.aws.probes import describe_environment
from eb_deploy.aws.retry import RetryPolicy, call_with_retry
from eb_deploy.aws.utils import AWSClients
from eb_deploy.exceptions import DeploymentFailedError, DeploymentTimeoutError
from eb_deploy.schemas import DeploymentAction, EnvironmentState

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0

IN_PROGRESS_STATUSES = frozenset({'Launching', 'Updating', 'LinkingFrom', 'LinkingTo', 'Aborting'})
FAILED_STATUSES = frozenset({'Terminating', 'Terminated'})
HEALTHY = frozenset({'Green', 'Yellow'})

ERROR_SEVERITIES = frozenset({'ERROR', 'FATAL'})
MAX_RECENT_ERRORS = 10
MAX_EVENT_RECORDS = 100

StatePredicate = Callable[[EnvironmentState], bool]


class EventTail:
    """Streams new environment events, skipping anything already shown."""

    def __init__(self, clients: AWSClients, application_name: str, environment_name: str,
                 since: Optional[datetime] = None):
        self.clients = clients
        self.application_name = application_name
        self.environment_name = environment_name
        self.last_seen = since
        self.recent_errors: Deque[str] = deque(maxlen=MAX_RECENT_ERRORS)

    def fetch(self) -> List[Dict]:
        """Fetch, log and return events newer than the last one seen."""
        params = {
            'ApplicationName': self.application_name,
            'EnvironmentName': self.environment_name,
            'MaxRecords': MAX_EVENT_RECORDS,
        }
        if self.last_seen is not None:
            params['StartTime'] = self.last_seen

        try:
            response = self.clients.elasticbeanstalk.describe_events(**params)
        except (ClientError, BotoCoreError) as e:
            # Events are progress output only; the status poll decides the outcome.
            logger.warning(f"Could not fetch events for {self.environment_name}: {e}")
            return []

        events = sorted(
            (e for e in response.get('Events', []) if e.get('EventDate') is not None),
            key=lambda e: e['EventDate'],
        )
        if self.last_seen is not None:
            events = [e for e in events if e['EventDate'] > self.last_seen]

        for event in events:
            self._report(event)
        if events:
            self.last_seen = events[-1]['EventDate']
        return events

    def _report(self, event: Dict) -> None:
        severity = event.get('Severity', 'INFO')
        line = f"{event['EventDate'].isoformat()} {severity} {event.get('Message', '')}"
        if severity in ERROR_SEVERITIES:
            self.recent_errors.append(line)
            logger.error(line)
        elif severity == 'WARN':
            logger.warning(line)
        else:
            logger.info(line)


def poll_until(describe: Callable[[], EnvironmentState], *, is_done: StatePredicate,
               is_failed: StatePredicate, timeout: float, label: str,
               tail: Optional[EventTail] = None,
               failure_message: Optional[Callable[[EnvironmentState], str]] = None,
               timeout_message: Optional[Callable[[EnvironmentState], str]] = None,
               interval: float = DEFAULT_POLL_INTERVAL,
               clock: Callable[[], float] = time.monotonic,
               sleep: Callable[[float], None] = time.sleep) -> EnvironmentState:
    """Poll until is_done, is_failed, or timeout seconds have passed.

    Returns:
        The state that satisfied is_done

    Raises:
        DeploymentFailedError: As soon as is_failed holds
        DeploymentTimeoutError: When the deadline passes first
    """
    deadline = clock() + timeout

    while True:
        state = describe()
        if tail is not None:
            tail.fetch()
        recent_errors = list(tail.recent_errors) if tail is not None else []

        logger.debug(f"{label}: status={state.status} health={state.health}")

        if is_done(state):
            return state

        if is_failed(state):
            message = failure_message(state) if failure_message else f"{label} failed"
            raise DeploymentFailedError(message, state.status, state.health, recent_errors)

        remaining = deadline - clock()
        if remaining <= 0:
            message = timeout_message(state) if timeout_message else f"{label} timed out after {timeout:g}s"
            raise DeploymentTimeoutError(message, state.status, state.health, recent_errors)

        sleep(min(interval, remaining))


def _describer(clients: AWSClients, application_name: str, environment_name: str,
               policy: RetryPolicy, sleep: Callable[[float], None]) -> Callable[[], EnvironmentState]:
    return lambda: call_with_retry(
        lambda: describe_environment(clients, application_name, environment_name),
        policy,
        'Describe environment',
        sleep=sleep,
    )


def _is_terminated(state: EnvironmentState) -> bool:
    return state.status in FAILED_STATUSES


def wait_for_deployment_completion(clients: AWSClients, application_name: str, environment_name: str,
                                   timeout: float, action: DeploymentAction,
                                   since: Optional[datetime] = None,
                                   policy: RetryPolicy = RetryPolicy(),
                                   interval: float = DEFAULT_POLL_INTERVAL,
                                   clock: Callable[[], float] = time.monotonic,
                                   sleep: Callable[[float], None] = time.sleep) -> Optional[datetime]:
    """Wait for an environment create/update to stop being in progress.

    Returns:
        Timestamp of the last event shown, so a following health wait does
        not print the same events again
    """
    logger.info(f"⏳ Waiting for environment {action.value} to complete (timeout {timeout:g}s)")
    tail = EventTail(clients, application_name, environment_name, since)

    state = poll_until(
        _describer(clients, application_name, environment_name, policy, sleep),
        is_done=lambda s: s.status is not None and s.status not in IN_PROGRESS_STATUSES
        and s.status not in FAILED_STATUSES,
        is_failed=_is_terminated,
        timeout=timeout,
        label=f"Environment {action.value}",
        tail=tail,
        failure_message=lambda s: (
            f"Environment {action.value} failed - environment {environment_name} is {s.status}"
        ),
        timeout_message=lambda s: (
            f"Environment {action.value} timed out after {timeout:g}s - status is {s.status}"
        ),
        interval=interval,
        clock=clock,
        sleep=sleep,
    )

    logger.info(f"✅ Environment {action.value} completed - Status: {state.status}, Health: {state.health}")
    return tail.last_seen


def wait_for_health_recovery(clients: AWSClients, application_name: str, environment_name: str,
                             timeout: float, since: Optional[datetime] = None,
                             policy: RetryPolicy = RetryPolicy(),
                             interval: float = DEFAULT_POLL_INTERVAL,
                             clock: Callable[[], float] = time.monotonic,
                             sleep: Callable[[float], None] = time.sleep) -> EnvironmentState:
    """Wait for health to reach Green or Yellow."""
    logger.info(f"🏥 Waiting for environment health to recover (timeout {timeout:g}s)")
    tail = EventTail(clients, application_name, environment_name, since)

    state = poll_until(
        _describer(clients, application_name, environment_name, policy, sleep),
        is_done=lambda s: s.health in HEALTHY and s.status not in IN_PROGRESS_STATUSES
        and s.status not in FAILED_STATUSES,
        is_failed=_is_terminated,
        timeout=timeout,
        label="Environment health recovery",
        tail=tail,
        failure_message=lambda s: (
            f"Environment health recovery failed - health is {s.health}, status is {s.status}"
        ),
        timeout_message=lambda s: (
            f"Environment health recovery timed out after {timeout:g}s - health is {s.health}"
        ),
        interval=interval,
        clock=clock,
        sleep=sleep,
    )

    logger.info(f"✅ Environment health is {state.health}")
    return state
