# /*
# Copyright 2026 The Knuu Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Fixed-interval poll loops bounded by a Context."""

from __future__ import annotations

from typing import Any, Callable

from tenacity import RetryError, Retrying, retry_if_exception_type, retry_if_result, wait_fixed
from tenacity.stop import stop_base

from knuu.context import Context
from knuu.errors import NotReadyError, WaitTimeoutError


class stop_when_done(stop_base):
    """Stop retrying once the context is cancelled or past its deadline."""

    def __init__(self, ctx: Context) -> None:
        self.ctx = ctx

    def __call__(self, retry_state) -> bool:
        return self.ctx.done()


def retrying_for(ctx: Context, interval: float, **kwargs: Any) -> Retrying:
    """Build a tenacity Retrying whose sleeps and stop honour *ctx*.

    Extra keyword arguments are passed through to Retrying; a ``stop``
    argument is combined with the context stop.
    """
    stop = stop_when_done(ctx)
    if "stop" in kwargs:
        stop = stop | kwargs.pop("stop")
    return Retrying(wait=wait_fixed(interval), stop=stop, sleep=ctx.sleep, **kwargs)


def poll_until(
    ctx: Context,
    check: Callable[[], Any],
    interval: float,
    description: str,
) -> Any:
    """Call *check* every *interval* seconds until it returns a truthy value.

    *check* may also raise NotReadyError to ask for another attempt. Any
    other exception is propagated as is.

    Args:
        ctx: Governing context; its cancellation ends the loop.
        check: Zero-argument predicate.
        interval: Seconds between attempts.
        description: What is being waited for, used in the timeout message.

    Returns:
        The first truthy value returned by *check*.

    Raises:
        WaitTimeoutError: If *ctx* is done before *check* succeeds.
    """

    def attempt() -> Any:
        if ctx.done():
            raise WaitTimeoutError(f"timeout waiting for {description}: {ctx.reason()}")
        return check()

    retrying = retrying_for(
        ctx,
        interval,
        retry=retry_if_result(lambda ok: not ok) | retry_if_exception_type(NotReadyError),
    )
    try:
        return retrying(attempt)
    except RetryError as err:
        raise WaitTimeoutError(f"timeout waiting for {description}: {ctx.reason()}") from err
