import asyncio
import inspect
import json
import uuid
from typing import Any, Callable, Optional
from urllib.parse import urljoin, urlsplit

import aiohttp
from loguru import logger
from bagpack_validate_client.errors import (
    JobFailed,
    MalformedLocator,
    PollTransportError,
    SubmissionTransportError,
    UnrecognizedStatus,
)
from bagpack_validate_client.models import (
    Done,
    Failed,
    JobHandle,
    JobStatus,
    Pending,
    PollSession,
    Running,
    StatusPollingConfig,
    SubmitResult,
    ValidateCommand,
    ValidationOutcome,
    parse_job_status,
)

_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


def extract_handle(locator: Optional[str]) -> JobHandle:
    """Takes the job identifier from the last path segment of a status locator"""
    if locator is None or not locator.strip():
        raise MalformedLocator("No Location header in response", locator)

    path = urlsplit(locator.strip()).path.rstrip("/")
    job_id = path.split("/")[-1]
    if not job_id:
        raise MalformedLocator(f"No job identifier in status URL: {locator}", locator)

    try:
        uuid.UUID(job_id)
    except ValueError:
        raise MalformedLocator(
            f"Invalid job identifier '{job_id}' in status URL: {locator}", locator
        ) from None

    return JobHandle(job_id=job_id, locator=locator)


class BagPackValidateClient:
    def __init__(
        self,
        base_url: str,
        config: Optional[StatusPollingConfig] = None,
        timeout: Optional[float] = 30.0,
        on_status_change: Optional[Callable[[JobStatus], Any]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.config = config or StatusPollingConfig()
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.logger = logger
        self.on_status_change = on_status_change

    def session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=self.timeout)

    async def submit(self, session: aiohttp.ClientSession, bag_path: str) -> SubmitResult:
        """Sends the validation request and returns the status locator or an immediate result"""
        url = f"{self.base_url}/validate"
        command = ValidateCommand(bag_location=str(bag_path))

        try:
            async with session.post(url, json=command.model_dump(by_alias=True)) as response:
                response.raise_for_status()
                location = response.headers.get("Location", "").strip()
                status = response.status
                body = "" if location else await response.text()
        except aiohttp.ClientResponseError as e:
            self.logger.debug(f"HTTP error {e.status} at {url}: {e.message}")
            raise SubmissionTransportError(
                f"Validation request rejected with HTTP {e.status}: {e.message}"
            ) from e
        except _TRANSPORT_ERRORS as e:
            self.logger.debug(f"Error submitting validation request: {e!r}")
            raise SubmissionTransportError(f"Could not submit validation request: {e!r}") from e
        except UnicodeDecodeError as e:
            raise SubmissionTransportError(f"Validation response is not valid text: {e}") from e

        if location:
            return SubmitResult(locator=urljoin(f"{self.base_url}/", location))

        # Older services answer synchronously with the validation result as body
        if status == 200 and body.strip():
            try:
                return SubmitResult(result=json.loads(body))
            except ValueError as e:
                raise SubmissionTransportError(
                    f"Validation response is not valid JSON: {e}"
                ) from e

        raise MalformedLocator("No Location header in response")

    async def poll_once(self, session: aiohttp.ClientSession, handle: JobHandle) -> JobStatus:
        """Fetches the current status of a validation job"""
        start_time = asyncio.get_event_loop().time()
        url = f"{self.base_url}/validate/{handle.job_id}"

        try:
            async with session.get(url) as response:
                response.raise_for_status()
                data = await response.json(content_type=None)
        except aiohttp.ClientResponseError as e:
            self.logger.debug(f"HTTP error {e.status} at {url}: {e.message}")
            raise PollTransportError(
                f"Status request for job {handle.job_id} failed with HTTP {e.status}: {e.message}"
            ) from e
        except _TRANSPORT_ERRORS as e:
            self.logger.debug(f"Error polling status: {e!r}")
            raise PollTransportError(f"Could not fetch status of job {handle.job_id}: {e!r}") from e
        except ValueError as e:
            raise PollTransportError(f"Status of job {handle.job_id} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise PollTransportError(f"Status of job {handle.job_id} is not a JSON object")

        elapsed_time = asyncio.get_event_loop().time() - start_time
        return parse_job_status(data, elapsed_time=elapsed_time)

    async def _handle_status_change(
        self, status: JobStatus, last_status: Optional[JobStatus]
    ) -> None:
        """Invoke the status change callback if the status has changed"""
        if last_status is not None and last_status.kind == status.kind:
            return
        self.logger.debug(f"Job status changed to {status.kind}")
        if self.on_status_change is not None:
            result = self.on_status_change(status)
            if inspect.isawaitable(result):
                await result

    async def _wait_before_poll(self, poll: PollSession) -> None:
        self.logger.debug(
            f"Job {poll.handle.job_id} still pending, waiting {poll.interval:.2f}s before next poll"
        )
        await asyncio.sleep(poll.interval)
        poll.waited += poll.interval

    async def await_terminal(
        self,
        session: aiohttp.ClientSession,
        handle: JobHandle,
        interval: Optional[float] = None,
    ) -> Any:
        """Polls the job until it is DONE (returns its result) or FAILED (raises JobFailed)"""
        poll = PollSession(
            handle=handle,
            interval=self.config.interval if interval is None else interval,
        )
        last_status = None

        while True:
            status = await self.poll_once(session, handle)
            poll.polls += 1
            self.logger.info(f"Status: {status.label}")

            await self._handle_status_change(status, last_status)
            last_status = status

            if isinstance(status, Done):
                return status.result
            if isinstance(status, Failed):
                raise JobFailed(status.error)
            if isinstance(status, (Pending, Running)):
                await self._wait_before_poll(poll)
                continue
            raise UnrecognizedStatus(status.label)

    async def validate(self, bag_path: str, wait: bool = True) -> ValidationOutcome:
        """Submits a bag for validation and, unless wait is False, waits for the outcome"""
        async with self.session() as session:
            submitted = await self.submit(session, bag_path)
            if submitted.locator is None:
                self.logger.info("Validation completed successfully.")
                return ValidationOutcome(result=submitted.result)

            self.logger.info(f"Validation job submitted. Status URL: {submitted.locator}")
            if not wait:
                return ValidationOutcome(locator=submitted.locator)

            handle = extract_handle(submitted.locator)
            self.logger.info("Waiting for validation to complete...")
            result = await self.await_terminal(session, handle)
            self.logger.info("Validation completed successfully.")
            return ValidationOutcome(locator=submitted.locator, result=result, waited=True)
