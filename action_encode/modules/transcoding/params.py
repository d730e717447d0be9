"""FFmpeg argument construction.

Merges default, derived and caller-supplied flags into the flat argument list
passed to the encoder process.
"""

import os
from typing import Optional

from action_encode.modules.transcoding.models import Job
from action_encode.modules.transcoding.schemas import EncodeParameters, EncodeSettings


INPUT_FLAG = "-i"
OUTPUT_FLAG = "-y"

# Base layer, applied under everything else
DEFAULT_AUDIO_BITRATE = "128k"
DEFAULT_AUDIO_SAMPLE_RATE = "44100"

# Derived layer, overridable by the caller
DERIVED_PARAMS: EncodeParameters = {
    "-acodec": "aac",
    "-vcodec": "libx264",
    "-pix_fmt": "yuv420p",
    "-r": "25",
}


def resolve_input_path(job: Job, path: str) -> str:
    """Resolve an input path against the job working directory."""
    if os.path.isabs(path):
        return path
    return os.path.join(job.workpath, path)


def build_params(
    job: Job,
    settings: EncodeSettings,
    input: str,
    output: str,
    overrides: Optional[EncodeParameters] = None,
) -> list[str]:
    """Build the FFmpeg argument list for one transcode.

    Args:
        job: Render job owning the input
        settings: Run settings (used for logging)
        input: Primary input path
        output: Output file path
        overrides: Caller flags; may replace any default and may add extra
            inputs under "-i" (single value or sequence)

    Returns:
        Flat list alternating flag names and values
    """
    overrides = dict(overrides or {})

    inputs = [input]
    if INPUT_FLAG in overrides:
        extra_inputs = overrides.pop(INPUT_FLAG)
        if isinstance(extra_inputs, (list, tuple)):
            inputs.extend(extra_inputs)
        else:
            inputs.append(extra_inputs)

    inputs = [resolve_input_path(job, str(path)) for path in inputs]

    settings.logger.info(f"[{job.uid}] action-encode: input file {inputs[0]}")
    settings.logger.info(f"[{job.uid}] action-encode: output file {output}")

    # The output flag must stay last whatever the caller passed for it
    overrides.pop(OUTPUT_FLAG, None)

    params: EncodeParameters = {
        INPUT_FLAG: inputs,
        "-ab": DEFAULT_AUDIO_BITRATE,
        "-ar": DEFAULT_AUDIO_SAMPLE_RATE,
    }
    params.update(DERIVED_PARAMS)
    params.update(overrides)
    params[OUTPUT_FLAG] = output

    return flatten_params(params)


def flatten_params(params: EncodeParameters) -> list[str]:
    """Convert a parameter mapping to a flat argument list.

    Sequence values expand into one (flag, value) pair per element.
    """
    args: list[str] = []
    for flag, value in params.items():
        if isinstance(value, (list, tuple)):
            for item in value:
                args.extend([flag, str(item)])
        else:
            args.extend([flag, str(value)])
    return args
