from shortuuid import ShortUUID

FACE_ID_LENGTH = 6


def face_id(taken=()) -> str:
    """
    Returns a short id for a face the forwarder learned about.

    :param taken: Ids already in use, never returned.
    :return: A short uuid.
    """
    generator = ShortUUID()
    new_id = generator.random(length=FACE_ID_LENGTH)
    while new_id in taken:
        new_id = generator.random(length=FACE_ID_LENGTH)
    return str(new_id)
