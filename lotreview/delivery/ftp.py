"""
FTP transport for the delivery archive.

Each call opens its own connection and always closes it, so a transport
instance holds no session state between deliveries.
"""
import ftplib
import io
import logging
from contextlib import contextmanager
from typing import Any, Dict, List

from lotreview.core.config import DeliverySettings

logger = logging.getLogger(__name__)


class FtpTransport:
    """Uploads, fetches and removes map files on an FTP (or explicit FTPS) server."""

    def __init__(self, settings: DeliverySettings):
        self.settings = settings

    @property
    def target_name(self) -> str:
        return self.settings.target_name

    @contextmanager
    def _session(self):
        s = self.settings
        client = ftplib.FTP_TLS(timeout=s.timeout) if s.secure else ftplib.FTP(timeout=s.timeout)
        try:
            client.connect(s.host, s.port)
            client.login(s.user, s.password)
            if s.secure:
                client.prot_p()
            if s.remote_dir:
                client.cwd(s.remote_dir)
            logger.debug(f"Connected to FTP server {self.target_name}")
            yield client
        finally:
            client.close()

    def upload(self, remote_name: str, payload: bytes):
        """Stores ``payload`` as ``remote_name`` in the configured directory."""
        with self._session() as client:
            logger.info(f"Uploading {remote_name} ({len(payload)} bytes) to {self.target_name}")
            client.storbinary(f"STOR {remote_name}", io.BytesIO(payload))

    def download(self, remote_name: str) -> bytes:
        """Fetches ``remote_name`` from the configured directory."""
        buffer = io.BytesIO()
        with self._session() as client:
            client.retrbinary(f"RETR {remote_name}", buffer.write)
        logger.info(f"Downloaded {remote_name} ({buffer.tell()} bytes) from {self.target_name}")
        return buffer.getvalue()

    def delete(self, remote_name: str):
        with self._session() as client:
            client.delete(remote_name)
        logger.info(f"Deleted {remote_name} from {self.target_name}")

    def list_files(self) -> List[str]:
        with self._session() as client:
            return client.nlst()

    def connection_info(self) -> Dict[str, Any]:
        """Connection details safe to display (no password)."""
        s = self.settings
        return {
            "host": s.host,
            "port": s.port,
            "user": s.user,
            "remote_dir": s.remote_dir,
            "secure": s.secure,
        }

    def test_connection(self) -> Dict[str, Any]:
        """Connects and lists the remote directory. Never raises."""
        try:
            files = self.list_files()
        except ftplib.all_errors as e:
            logger.warning(f"FTP connection test failed for {self.target_name}: {e}")
            return {"success": False, "message": str(e)}
        return {"success": True, "message": "FTP connection successful", "file_count": len(files)}
