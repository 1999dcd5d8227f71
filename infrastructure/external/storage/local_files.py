"""Read local files into upload handles."""
from pathlib import Path
from typing import Optional, Union

import aiofiles

from application.utils.storage import guess_content_type
from domain.upload import LocalFile


async def read_local_file(
    path: Union[str, Path],
    content_type: Optional[str] = None,
) -> LocalFile:
    """Load ``path`` fully into memory.

    The declared type defaults to a guess from the extension.

    Raises:
        FileNotFoundError: path does not exist
        IsADirectoryError: path is a directory
    """
    file_path = Path(path)
    async with aiofiles.open(file_path, "rb") as f:
        content = await f.read()
    return LocalFile(
        content=content,
        content_type=content_type or guess_content_type(file_path.name),
        filename=file_path.name,
    )
