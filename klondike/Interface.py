from klondike.Core import Core, Move


class Interface:

    def __init__(self):
        self.core: Core = None

    def onStart(self):
        pass

    def onEvent(self, move: Move):
        """
        Invoked after the core installed a new snapshot.
        :param move: the move that produced it, None for a fresh deal
        :return:
        """
        self.notifyRedraw()

    def onUndoEvent(self, move: Move):
        """
        Invoked when a move is undone.
        :param move:
        :return:
        """
        self.notifyRedraw()

    def notifyRedraw(self):
        pass

    def onWin(self):
        pass
