"""A stack whose methods carry contracts declared in the class body."""

from pledge import check, old, post, pre


class Stack:
    def __init__(self):
        self.items = []

    post(len(self.items) == old(len(self.items)) + 1)
    post("on top", self.items[-1] is item)
    def push(self, item):
        self.items.append(item)

    pre("not empty", len(self.items) > 0)
    post(len(self.items) == old(len(self.items)) - 1)
    def pop(self):
        return self.items.pop()

    def peek(self):
        check("not empty", self.items)
        return self.items[-1]

    def size(self):
        return len(self.items)
