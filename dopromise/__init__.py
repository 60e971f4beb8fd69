"""
dopromise - single-threaded promises with generator-based async functions.

Promises settle once and run their reactions on a microtask queue that sits on
top of a pluggable timer service. Generator functions decorated with
``@async_`` suspend at each ``yield`` until the yielded promise settles.

Example:
    >>> from dopromise import Promise, async_, await_, sleep, run_until_settled
    >>>
    >>> @async_
    ... def countdown(n):
    ...     while n:
    ...         yield from await_(sleep(0.1))
    ...         n -= 1
    ...     return "liftoff"
    ...
    >>> run_until_settled(countdown(3))
    ('liftoff', <PromiseState.FULFILLED: 'fulfilled'>)
"""

from loguru import logger

from dopromise import config

# Core
from dopromise._vendor import UNDEFINED, FrozenDict, Undefined
from dopromise.promise import (
    Promise,
    PromiseState,
    Resolvers,
    is_promise,
)

# Combinators
from dopromise.combinators import (
    all_,
    all_settled,
    any_,
    race,
)

# Async adapter
from dopromise.task import (
    AsyncFunction,
    Task,
    async_,
    await_,
    current_task,
)

# I/O
from dopromise.io import (
    Response,
    fetch,
    fetch_img,
    sleep,
)

# Scheduling
from dopromise.microtask import (
    MicrotaskQueue,
    get_microtask_queue,
    set_microtask_queue,
)
from dopromise.scheduling import (
    AsyncioTimer,
    BlockingTimer,
    SimulationTimer,
    TimerService,
    get_timer,
    run_until_settled,
    set_timer,
    to_future,
)

# Errors
from dopromise.errors import (
    AggregateError,
    AwaitOutsideTaskError,
    ChainingCycleError,
    FetchError,
    ImageLoadError,
    NotAPromiseError,
    PromiseError,
    PromiseUsageError,
    RejectionError,
)

if not config.debug_enabled():
    logger.disable("dopromise")

__version__ = "0.1.0"

__all__ = [
    # Core
    "FrozenDict",
    "Promise",
    "PromiseState",
    "Resolvers",
    "UNDEFINED",
    "Undefined",
    "is_promise",
    # Combinators
    "all_",
    "all_settled",
    "any_",
    "race",
    # Async adapter
    "AsyncFunction",
    "Task",
    "async_",
    "await_",
    "current_task",
    # I/O
    "Response",
    "fetch",
    "fetch_img",
    "sleep",
    # Scheduling
    "AsyncioTimer",
    "BlockingTimer",
    "MicrotaskQueue",
    "SimulationTimer",
    "TimerService",
    "get_microtask_queue",
    "get_timer",
    "run_until_settled",
    "set_microtask_queue",
    "set_timer",
    "to_future",
    # Errors
    "AggregateError",
    "AwaitOutsideTaskError",
    "ChainingCycleError",
    "FetchError",
    "ImageLoadError",
    "NotAPromiseError",
    "PromiseError",
    "PromiseUsageError",
    "RejectionError",
]
