from pairchat.directory.service import UidDirectoryService, generate_handle, is_valid_handle

__all__ = ["UidDirectoryService", "generate_handle", "is_valid_handle"]
