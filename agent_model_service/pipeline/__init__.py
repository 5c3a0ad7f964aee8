"""
Resolution pipeline: metadata hash -> unpacked proto tree -> service
name -> compiled JSON, with a disk cache at every stage.
"""
