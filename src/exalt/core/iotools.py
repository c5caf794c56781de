import os
import pathlib
import typing


PathLike = typing.Union[str, os.PathLike]


def search(
    paths: typing.Iterable[typing.Optional[PathLike]],
    file: PathLike,
) -> typing.Optional[pathlib.Path]:
    """Search `paths` for `file`.

    Parameters
    ----------
    paths : iterable of path-like
        The paths to search, in the order given. Each member must be an object
        that can represent a path on the current file system, or `None`, which
        this function skips.

    file : path-like
        The file to locate.

    Returns
    -------
    path or `None`
        The full path to the file, if found.
    """
    for p in paths:
        if p is None:
            continue
        path = pathlib.Path(p).expanduser().resolve()
        if path.is_dir():
            test = path / str(file)
            if test.exists():
                return test
