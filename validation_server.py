import uuid
from datetime import datetime
from typing import List, Optional

from aiohttp import web
from loguru import logger


class ValidationServer:
    """Stand-in for the validate-bagpack service

    Jobs report RUNNING until `completion_time` seconds have passed since
    submission and DONE afterwards, unless `script` is given: then each status
    request returns the next record of the script, repeating the last one.
    """

    def __init__(
        self,
        completion_time: float = 10.0,
        script: Optional[List[dict]] = None,
        send_location: bool = True,
        synchronous: bool = False,
        poll_error_status: Optional[int] = None,
        poll_body: Optional[str] = None,
        relative_location: bool = False,
        submit_error_status: Optional[int] = None,
        submit_body: Optional[bytes] = None,
    ):
        self.completion_time = completion_time
        self.script = script
        self.send_location = send_location
        self.synchronous = synchronous
        self.poll_error_status = poll_error_status
        self.poll_body = poll_body
        self.relative_location = relative_location
        self.submit_error_status = submit_error_status
        self.submit_body = submit_body
        self.submissions: List[dict] = []
        self.poll_count = 0
        self.jobs = {}
        self.app = web.Application()
        self.app.router.add_post("/validate", self.handle_validate)
        self.app.router.add_get("/validate/{job_id}", self.handle_status)
        self.logger = logger
        self.runner = None

    def result_for(self, bag_location: str) -> dict:
        return {"bagLocation": bag_location, "isCompliant": True, "ruleViolations": []}

    async def handle_validate(self, request):
        command = await request.json()
        self.submissions.append(command)
        bag_location = command.get("bagLocation")

        if self.submit_error_status is not None:
            return web.Response(status=self.submit_error_status, text="Scripted failure")

        if self.synchronous and self.submit_body is not None:
            return web.Response(body=self.submit_body, content_type="application/octet-stream")
        if self.synchronous:
            self.logger.info("Returning validation result synchronously")
            return web.json_response(self.result_for(bag_location))

        job_id = str(uuid.uuid4())
        self.jobs[job_id] = (datetime.now(), bag_location)
        headers = {}
        if self.send_location:
            path = f"/validate/{job_id}"
            headers["Location"] = path if self.relative_location else str(request.url.with_path(path))
        self.logger.info(f"Accepted validation job {job_id} for {bag_location}")
        if self.submit_body is not None:
            return web.Response(
                status=202,
                headers=headers,
                body=self.submit_body,
                content_type="application/octet-stream",
            )
        return web.Response(status=202, headers=headers)

    async def handle_status(self, request):
        self.poll_count += 1
        job_id = request.match_info["job_id"]
        if self.poll_error_status is not None:
            return web.Response(status=self.poll_error_status, text="Scripted failure")
        if job_id not in self.jobs:
            raise web.HTTPNotFound(text=f"No such job: {job_id}")
        if self.poll_body is not None:
            return web.Response(text=self.poll_body)

        if self.script is not None:
            record = self.script[min(self.poll_count, len(self.script)) - 1]
            self.logger.info(f"Returning scripted status {record.get('status')}")
            return web.json_response(record)

        started, bag_location = self.jobs[job_id]
        elapsed = (datetime.now() - started).total_seconds()
        if elapsed >= self.completion_time:
            self.logger.info("Returning completed status")
            return web.json_response(
                {"status": "DONE", "result": self.result_for(bag_location)}
            )
        self.logger.info(f"Returning running status (elapsed: {elapsed:.1f}s)")
        return web.json_response({"status": "RUNNING"})

    async def start(self, port: int = 20375):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self):
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
