""" Helper functions for tree paths. Internally a path is always a tuple of
    non-empty strings; these helpers accept the looser forms callers tend to
    use (lists, slash-delimited strings, None for the root) and normalize
    them.
"""

from . import errors


root = ()


def normalize(path):
    """ Return *path* as a tuple of elements. A string is split on '/';
        None and the empty string denote the root. Raise
        :class:`errors.InvalidPath` if any element is empty or not a string.

        Note that a string path cannot represent an element containing a
        slash, such as an interface name; use a list or tuple for those.
    """

    if path is None:
        return root

    if isinstance(path, str):
        stripped = path.strip('/')
        if stripped == '':
            return root
        path = stripped.split('/')

    try:
        path = tuple(path)
    except TypeError:
        raise errors.InvalidPath('not a path: ' + repr(path))

    for element in path:
        if isinstance(element, str) and element != '':
            continue
        raise errors.InvalidPath('invalid path element %r in %s' % (element, render(path)))

    return path



def join(prefix, path):
    """ Return the absolute path formed by appending *path* to *prefix*.
    """

    return normalize(prefix) + normalize(path)



def contains(ancestor, path):
    """ Return True if *path* is *ancestor* or lies underneath it.
    """

    return path[:len(ancestor)] == ancestor



def relative(ancestor, path):
    """ Return *path* with the leading *ancestor* elements removed. The caller
        is expected to have established that *ancestor* contains *path*.
    """

    return path[len(ancestor):]



def render(path):
    """ Return a human-readable string for *path*, for use in log and error
        messages.
    """

    try:
        return '/' + '/'.join(str(element) for element in path)
    except TypeError:
        return repr(path)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
