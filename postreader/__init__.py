"""
PostReader: asynchronous text-to-speech publishing for posts.
"""
