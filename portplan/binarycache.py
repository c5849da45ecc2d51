# SPDX-License-Identifier: MIT

import collections
import os
import tarfile

import zstandard

import portplan.base as _base
import portplan.util as _util
from portplan.exceptions import GenericError

ArtifactHandle = collections.namedtuple("ArtifactHandle", ["content_identity", "path"])


class BinaryCache:
    def lookup(self, content_identity):
        raise NotImplementedError()

    def restore(self, handle, dest_dir):
        raise NotImplementedError()

    def store(self, content_identity, source_dir):
        raise NotImplementedError()


class NullBinaryCache(BinaryCache):
    def lookup(self, content_identity):
        return None

    def restore(self, handle, dest_dir):
        raise AssertionError("NullBinaryCache never returns artifacts")

    def store(self, content_identity, source_dir):
        pass


# Archives live in <root>/<first two digits>/<content identity>.tar.zst.
class FilesystemBinaryCache(BinaryCache):
    def __init__(self, root, *, read_only=False):
        self.root = root
        self.read_only = read_only

    def archive_path(self, content_identity):
        return os.path.join(self.root, content_identity[:2], content_identity + ".tar.zst")

    def lookup(self, content_identity):
        path = self.archive_path(content_identity)
        if not os.access(path, os.F_OK):
            if _base.verbosity:
                _util.log_info("Binary cache miss for {}".format(content_identity))
            return None
        return ArtifactHandle(content_identity, path)

    # Raises GenericError if the archive is damaged.
    def restore(self, handle, dest_dir):
        _util.ensure_dir(dest_dir)
        try:
            with open(handle.path, "rb") as f:
                dctx = zstandard.ZstdDecompressor()
                with dctx.stream_reader(f) as reader:
                    with tarfile.open(fileobj=reader, mode="r|") as tar:
                        tar.extractall(dest_dir, filter="data")
        except (zstandard.ZstdError, tarfile.TarError, EOFError) as e:
            raise GenericError("Corrupt binary cache archive {}: {}".format(handle.path, e))

    def store(self, content_identity, source_dir):
        if self.read_only:
            return None
        path = self.archive_path(content_identity)
        with _util.atomic_open(path, "wb") as f:
            cctx = zstandard.ZstdCompressor()
            with cctx.stream_writer(f, closefd=False) as writer:
                with tarfile.open(fileobj=writer, mode="w|") as tar:
                    for name in sorted(os.listdir(source_dir)):
                        tar.add(os.path.join(source_dir, name), arcname=name)
        if _base.verbosity:
            _util.log_info("Stored {} in the binary cache".format(content_identity))
        return ArtifactHandle(content_identity, path)
