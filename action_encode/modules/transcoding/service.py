"""Service layer for the encode action.

Transcodes every video asset of a job, one encoder process at a time, and
points each asset at its encoded output.
"""

from typing import Optional

from action_encode.core.logging import correlation_id_var, log_info
from action_encode.modules.transcoding.ffmpeg import FFmpegTranscoder
from action_encode.modules.transcoding.models import Job
from action_encode.modules.transcoding.schemas import EncodeSettings


class TranscodingService:
    """Runs the encode action over the assets of a job."""

    def __init__(
        self,
        settings: EncodeSettings,
        transcoder: Optional[FFmpegTranscoder] = None,
    ):
        """Initialize service with run settings."""
        self.settings = settings
        self.transcoder = transcoder or FFmpegTranscoder()

    async def run(self, job: Job) -> Job:
        """Transcode all video assets of a job in order.

        The first failure propagates; assets already rewritten stay rewritten.

        Args:
            job: Render job, mutated in place

        Returns:
            The same job with video asset destinations replaced
        """
        logger = self.settings.logger
        token = correlation_id_var.set(job.uid)
        try:
            log_info(logger, f"[{job.uid}] starting action-encode action (ffmpeg)", job_uid=job.uid)

            for asset in job.assets:
                if not asset.is_video:
                    continue

                logger.info(f"[{job.uid}] {asset.layer_name or asset.dest}")
                output = await self.transcoder.transcode(job, self.settings, asset.dest)
                asset.dest = output

            log_info(logger, f"[{job.uid}] Completed transcoding", job_uid=job.uid)
            logger.debug(job.model_dump_json(by_alias=True))
        finally:
            correlation_id_var.reset(token)

        return job


async def run(job: Job, settings: EncodeSettings) -> Job:
    """Run the encode action with the default transcoder."""
    return await TranscodingService(settings).run(job)
