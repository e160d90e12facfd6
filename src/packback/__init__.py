"""packback - compressed, encrypted backups to local disks or rclone remotes."""

__version__ = "0.1.0"
